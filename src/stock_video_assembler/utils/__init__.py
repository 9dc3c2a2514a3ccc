"""
Utility modules for the stock video assembler.
"""

from .file_utils import (
    ensure_directory,
    get_file_size,
    format_file_size,
    remove_files,
    cleanup_directory,
    get_directory_size,
    check_disk_usage,
    cleanup_temp_files,
    emergency_cleanup,
)

__all__ = [
    "ensure_directory",
    "get_file_size",
    "format_file_size",
    "remove_files",
    "cleanup_directory",
    "get_directory_size",
    "check_disk_usage",
    "cleanup_temp_files",
    "emergency_cleanup",
]
