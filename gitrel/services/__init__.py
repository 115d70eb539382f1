"""Application services for git-release.

Services implement the release workflow, coordinating between the domain
layer (core/) and infrastructure (git/, platform/).
"""

from gitrel.services.release.service import bless, build_needed, print_report, run_release

__all__ = [
    "bless",
    "build_needed",
    "print_report",
    "run_release",
]
