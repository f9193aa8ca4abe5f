"""
The main module of filter_server.

filter_server runs an arbitrary command, script or program that reads from
standard input and writes to standard output as a forking TCP/IP service.
"""
