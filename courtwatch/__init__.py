"""CourtWatch - court queue tracking and case alerts."""

__version__ = "0.1.0"
