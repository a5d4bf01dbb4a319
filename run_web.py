#!/usr/bin/env python3
"""
Main entry point for the Match Fee Allocation Engine web application.

This script launches the Flask-based JSON API using MATCHFEES_* settings
from the environment or a `.env` file.
"""
from matchfees.ui.web_app import run_web_app

if __name__ == "__main__":
    run_web_app()
