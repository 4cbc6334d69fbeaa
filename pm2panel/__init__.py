"""
pm2panel - A web control panel for PM2.

Lists, starts, restarts, stops and deletes PM2 processes, streams their logs
and browses a sandboxed directory for scripts, behind a single admin login.
"""

__version__ = "0.1.0"
