#!/usr/bin/env python
"""
Persistent runner for the CreditDesk API.
Keeps uvicorn running even if it crashes.
"""
import os
import subprocess
import sys
import time

os.chdir(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

PORT = os.environ.get("PORT", "8000")


def main():
    while True:
        print(f"\n[INFO] Starting CreditDesk on port {PORT}...")
        try:
            subprocess.run(
                [sys.executable, "-m", "uvicorn", "creditdesk.main:app", "--port", PORT],
                check=False,
            )
        except KeyboardInterrupt:
            print("\n[INFO] Shutting down CreditDesk...")
            break

        print("[INFO] Server stopped, will restart in 2 seconds...")
        time.sleep(2)


if __name__ == "__main__":
    main()
