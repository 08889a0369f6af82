"""
Watcher-side progress socket client re-exports.
"""
from client.channel import ProgressChannel
from client.dialog import ProgressDialog

__all__ = [
    "ProgressChannel",
    "ProgressDialog",
]
