"""This is the processing submodule.

This module contains the sleep detection logic: the rolling motion buffer, the
sleep probability model, the session state machine and the analytics computed
over finished sessions.
"""
