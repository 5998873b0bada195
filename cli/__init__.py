"""
LogeTogo API - Command Line Interface

Main CLI entry point for running and inspecting the API server.
"""
from cli.main import app, main

__all__ = ["app", "main"]
