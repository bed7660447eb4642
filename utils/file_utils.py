"""
File utility functions for task sheet import and analysis export
"""

import os
import uuid
from datetime import datetime
from pathlib import Path


def check_task_file(path, allowed_extensions=None, max_size_mb=50):
    """
    Validate a task sheet path before reading it
    """
    if allowed_extensions is None:
        allowed_extensions = ['.xlsx', '.xls', '.csv']

    path = Path(path)
    if not path.is_file():
        return False, f"File {path} does not exist"

    file_extension = path.suffix.lower()
    if file_extension not in allowed_extensions:
        return False, f"File type {file_extension} not allowed. Allowed: {', '.join(allowed_extensions)}"

    file_size = os.path.getsize(path) / 1024 / 1024  # Convert to MB
    if file_size > max_size_mb:
        return False, f"File size {file_size:.2f}MB exceeds maximum {max_size_mb}MB"

    return True, "File validated successfully"


def generate_filename(prefix, extension, include_timestamp=True):
    """
    Generate a unique filename for outputs
    """
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    unique_id = str(uuid.uuid4())[:8]

    if include_timestamp:
        return f"{prefix}_{timestamp}_{unique_id}{extension}"
    else:
        return f"{prefix}_{unique_id}{extension}"


def ensure_directory(directory):
    """Ensure directory exists, create if not"""
    Path(directory).mkdir(parents=True, exist_ok=True)
    return directory
