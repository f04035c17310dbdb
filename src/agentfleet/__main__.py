"""Entry point for ``python -m agentfleet``.

Usage:
    python -m agentfleet list
    python -m agentfleet watchdog --check-interval 30 --stall-timeout 5
"""

from agentfleet.cli import main

if __name__ == "__main__":
    main()
