#!/usr/bin/env python3

"""
Shared constants for the FizzBuzz API service.

Environment variable names and their fallback defaults live here so that the
configuration layer, the entrypoint and the tests agree on them.
"""

# Environment variables
ENV_SERVER_HOST = "SERVER_HOST"
ENV_SERVER_PORT = "SERVER_PORT"
ENV_ADMIN_PORT = "ADMIN_PORT"
ENV_READ_TIMEOUT = "READ_TIMEOUT"
ENV_READ_HEADER_TIMEOUT = "READ_HEADER_TIMEOUT"
ENV_WRITE_TIMEOUT = "WRITE_TIMEOUT"
ENV_IDLE_TIMEOUT = "IDLE_TIMEOUT"
ENV_SHUTDOWN_TIMEOUT = "SHUTDOWN_TIMEOUT"
ENV_MAX_HEADER_BYTES = "MAX_HEADER_BYTES"
ENV_API_KEY = "API_KEY"

# Defaults (seconds / bytes)
DEFAULT_DURATION = 3.0
DEFAULT_SHUTDOWN_TIMEOUT = 3.0
DEFAULT_MAX_HEADER_BYTES = 1024
# Allowance on top of MAX_HEADER_BYTES before a request head is rejected
HEADER_BYTES_SLACK = 4096

# Number of termination signals after which the process exits immediately
FORCE_QUIT_SIGNAL_COUNT = 2

# Server names, also used as task names and in log lines
API_SERVER_NAME = "api"
ADMIN_SERVER_NAME = "admin"

# FizzBuzz input bounds
FIZZBUZZ_MIN_VALUE = 1
FIZZBUZZ_MAX_VALUE = 100
