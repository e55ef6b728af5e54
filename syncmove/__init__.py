"""SyncMove — move files into a cloud-synced folder, one confirmed file at a time."""

__version__ = "0.3.0"
