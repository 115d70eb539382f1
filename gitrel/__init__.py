"""git-release: tag and branch releases for mainline-versioned git repositories."""

__version__ = "1.4.0"
