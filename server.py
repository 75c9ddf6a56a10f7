import logging
import os

from flask import Flask, request, jsonify, abort
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

import payload
import scratch
from transcode import Transcoder, ToolUnavailable, ConversionError, locate_ffmpeg, TOOL_UNAVAILABLE_MESSAGE

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


def log_level(name):
    level = getattr(logging, (name or "").upper(), None)
    return level if isinstance(level, int) else logging.INFO


logging.basicConfig(
    level=log_level(os.getenv("LOG_LEVEL", "INFO")),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal server error, please try again later."


def _formats(value):
    return [f.strip().lower().lstrip(".") for f in value.split(",") if f.strip()]


app = Flask(__name__)
app.config.update({
    "UPLOAD_FOLDER": os.getenv("UPLOAD_FOLDER", os.path.join(BASE_DIR, "tmp_uploads")),
    "OUTPUT_FOLDER": os.getenv("OUTPUT_FOLDER", os.path.join(BASE_DIR, "tmp_outputs")),
    "FFMPEG_BIN": os.getenv("FFMPEG_BIN"),
    "FFMPEG_TIMEOUT": float(os.getenv("FFMPEG_TIMEOUT", 300)),
    "MAX_FILE_SIZE": int(os.getenv("MAX_FILE_SIZE", 100 * 1024 * 1024)),
    # base64 bodies run ~4/3 of the decoded size
    "MAX_CONTENT_LENGTH": int(os.getenv("MAX_CONTENT_LENGTH", 200 * 1024 * 1024)),
    "SOURCE_FORMATS": _formats(os.getenv("SOURCE_FORMATS", "m4a,ogg")),
    "HOST": os.getenv("HOST", "0.0.0.0"),
    "PORT": int(os.getenv("PORT", 3001)),
})

CORS(
    app,
    origins="*",
    send_wildcard=True,
    methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


def configure(overrides=None):
    """Apply config overrides and resolve the ffmpeg binary they point at."""
    if overrides:
        app.config.update(overrides)

    ffmpeg_path = locate_ffmpeg(app.config["FFMPEG_BIN"])
    app.extensions["transcoder"] = Transcoder(ffmpeg_path, timeout=app.config["FFMPEG_TIMEOUT"])
    if ffmpeg_path:
        logger.info("ffmpeg ready: %s", ffmpeg_path)
    else:
        logger.warning("ffmpeg not found; conversions will fail until it is installed or FFMPEG_BIN is set")
    return app


@app.before_request
def short_circuit_preflight():
    if request.method == "OPTIONS":
        return "", 204


@app.route("/")
def index():
    return jsonify({
        "status": "ok",
        "message": f"mp3 converter is running on port {app.config['PORT']}.",
    })


@app.route("/health")
def health():
    transcoder = app.extensions["transcoder"]
    if not transcoder.is_available():
        return jsonify({"status": "unavailable", "message": TOOL_UNAVAILABLE_MESSAGE}), 503
    return jsonify({"status": "ok", "ffmpeg": transcoder.ffmpeg_path})


@app.route("/convert/<source_ext>-to-mp3", methods=["POST"])
def convert(source_ext):
    if source_ext not in app.config["SOURCE_FORMATS"]:
        abort(404)
    return convert_to_mp3(source_ext)


def convert_to_mp3(source_ext):
    """
    Convert the ``.<source_ext>`` upload in the request body to MP3.

    Request body (JSON):
        {"fileName": "song.m4a", "fileData": "<base64, data URI prefix allowed>"}

    Response:
        200 {"success": true, "message": ..., "fileName": "song.mp3", "fileData": "<base64 mp3>"}
        400 {"success": false, "message": ...} for a bad request body
        500 {"success": false, "message": ..., "detail": ...} when ffmpeg is
            missing, fails, or anything else goes wrong
    """
    cfg = app.config
    transcoder = app.extensions["transcoder"]
    body = request.get_json(silent=True)

    input_path = output_path = None
    try:
        # ------ TOOL CHECK ------
        transcoder.ensure_available()

        # ------ VALIDATE ------
        try:
            file_name, data = payload.validate_request(body, source_ext, cfg["MAX_FILE_SIZE"])
        except payload.ValidationError as e:
            logger.info("Rejected %s upload (%s): %s", source_ext, e.reason, e.message)
            return jsonify({"success": False, "message": e.message}), 400

        # ------ STAGE INPUT ------
        scratch.prepare_environment(cfg["UPLOAD_FOLDER"], cfg["OUTPUT_FOLDER"])
        token = scratch.unique_token()
        input_path, output_path = scratch.scratch_paths(
            token, source_ext, cfg["UPLOAD_FOLDER"], cfg["OUTPUT_FOLDER"]
        )
        logger.info("Converting %s -> mp3 [%s] (%d bytes)", source_ext, token, len(data))
        with open(input_path, "wb") as f:
            f.write(data)

        # ------ RUN FFMPEG ------
        try:
            transcoder.convert(input_path, output_path)
        except ConversionError as e:
            return jsonify({"success": False, "message": "FFmpeg conversion failed.", "detail": str(e)}), 500

        # ------ SEND BACK ------
        encoded = payload.encode_output(output_path)
        return jsonify({
            "success": True,
            "message": "Conversion succeeded!",
            "fileName": payload.safe_output_name(file_name),
            "fileData": encoded,
        })

    except ToolUnavailable as e:
        logger.error("%s conversion refused: %s", source_ext, e)
        return jsonify({"success": False, "message": str(e), "detail": str(e)}), 500
    except Exception as e:
        logger.exception("%s conversion failed", source_ext)
        return jsonify({"success": False, "message": INTERNAL_ERROR_MESSAGE, "detail": str(e)}), 500
    finally:
        # ------ CLEANUP ------
        scratch.cleanup([input_path, output_path])


@app.errorhandler(HTTPException)
def http_error(e):
    if e.code == 413:
        limit_mb = app.config["MAX_CONTENT_LENGTH"] // (1024 * 1024)
        message = f"Request body exceeds {limit_mb}MB."
    else:
        message = e.description
    return jsonify({"success": False, "message": message}), e.code


configure()


if __name__ == "__main__":
    logger.info("mp3 converter running on http://localhost:%s", app.config["PORT"])
    app.run(host=app.config["HOST"], port=app.config["PORT"], threaded=True)
