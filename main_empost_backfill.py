#!/usr/bin/env python3

"""
Main entry point for the EMpost Backfill Workflow.

Re-sends every invoice that has no EMpost UHAWB yet. The core logic is located
in the `shipping.empost.backfill` module.
"""

import sys
import os

# Ensure the project root is in the Python path
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, PROJECT_ROOT)

from shipping.empost.backfill import main as backfill_main

if __name__ == '__main__':
    backfill_main()
