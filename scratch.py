import logging
import os
import time
import uuid

logger = logging.getLogger(__name__)

# directory pairs already created in this process
_prepared = set()


def prepare_environment(upload_dir, output_dir):
    key = (upload_dir, output_dir)
    if key in _prepared:
        return
    os.makedirs(upload_dir, exist_ok=True)
    os.makedirs(output_dir, exist_ok=True)
    _prepared.add(key)
    logger.info("Staging directories ready: %s, %s", upload_dir, output_dir)


def unique_token():
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:12]}"


def scratch_paths(token, source_ext, upload_dir, output_dir):
    input_path = os.path.join(upload_dir, f"{token}.{source_ext}")
    output_path = os.path.join(output_dir, f"{token}.mp3")
    return input_path, output_path


def cleanup(paths):
    """Remove every path given, ignoring ones that were never created.

    Failures are logged and swallowed so they never replace the outcome of
    the request being cleaned up after.
    """
    for path in paths:
        if not path:
            continue
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to remove scratch file %s: %s", path, e)
