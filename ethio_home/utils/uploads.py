import logging
import os
import time

from flask import current_app
from werkzeug.utils import secure_filename

from ethio_home.errors import AppError

logger = logging.getLogger(__name__)

ALLOWED_MIME_PREFIXES = ('image/', 'video/')


class UploadConfig:
    """Where and how much a route accepts for one multipart field."""

    def __init__(self, subdir, field, max_files=1, max_bytes=2 * 1024 * 1024):
        self.subdir = subdir
        self.field = field
        self.max_files = max_files
        self.max_bytes = max_bytes

    def directory(self):
        return os.path.join(current_app.config['UPLOAD_FOLDER'], self.subdir)

    def url_for(self, filename):
        base = current_app.config['MEDIA_BASE_URL'].rstrip('/')
        return f"{base}/{self.subdir}/{filename}"


def _file_size(file):
    file.stream.seek(0, os.SEEK_END)
    size = file.stream.tell()
    file.stream.seek(0)
    return size


def _extension(file):
    name = secure_filename(file.filename or '')
    if '.' in name:
        return name.rsplit('.', 1)[1].lower()
    return (file.mimetype or '').split('/')[-1] or 'bin'


def save_uploads(files, config, prefix):
    """Validate and store uploaded files, returning the stored filenames.

    Every file is checked before any is written so a rejected batch leaves
    nothing behind on disk.
    """
    files = [f for f in files if f and f.filename]
    if not files:
        return []

    if len(files) > config.max_files:
        raise AppError(f'Too many files. Maximum is {config.max_files}', 400)

    for file in files:
        if not (file.mimetype or '').startswith(ALLOWED_MIME_PREFIXES):
            raise AppError('Invalid file type. Only images and videos are allowed.', 400)
        if _file_size(file) > config.max_bytes:
            raise AppError(f'File too large. Maximum size is {config.max_bytes // (1024 * 1024)}MB', 400)

    directory = config.directory()
    os.makedirs(directory, exist_ok=True)

    timestamp = int(time.time() * 1000)
    saved = []
    for n, file in enumerate(files, start=1):
        filename = secure_filename(f"{prefix}-{timestamp}-{n}.{_extension(file)}")
        file.save(os.path.join(directory, filename))
        saved.append(filename)

    logger.info('Stored %d file(s) in %s', len(saved), config.subdir)
    return saved


def discard_uploads(filenames, config):
    """Remove files stored by ``save_uploads`` for a write that did not go through"""
    if not filenames:
        return

    directory = config.directory()
    for filename in filenames:
        path = os.path.join(directory, filename)
        if os.path.exists(path):
            os.remove(path)
    logger.info('Discarded %d file(s) from %s', len(filenames), config.subdir)
