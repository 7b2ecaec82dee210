from .connectivity_monitor import ConnectivityMonitor
from .retry_policy import RetryPolicy
from .sheets_client import SheetsClient

__all__ = ["ConnectivityMonitor", "RetryPolicy", "SheetsClient"]
