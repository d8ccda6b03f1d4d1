"""LeaveFlow — two-stage leave / overtime approval with a per-year balance ledger."""

__version__ = "1.0.0"
