"""
Troublemaker: fault injection for the process it runs in.

Architecture:
    troublemaker/
    ├── engine/          # Jitter generator, settings resolver, CPU load, lifecycle
    ├── api/             # FastAPI app (liveness + remote exit) and listener thread
    ├── services/        # Signal ignorer
    ├── config.py        # Pydantic settings: flags > env > config file > defaults
    ├── durations.py     # Go-style duration strings <-> nanoseconds
    ├── exceptions.py    # Error taxonomy
    ├── logging_setup.py # structlog configuration
    └── cli.py           # Entrypoint, subcommands, startup orchestration

Only this process is affected: it exits, stalls, burns CPU or ignores
signals, and never touches other instances.

Version: 1.0.0
"""

__version__ = "1.0.0"
