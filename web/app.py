#!/usr/bin/env python3
"""
ConvertMorph - Flask Web Application

A local JSON API for PDF analysis and compression with progress tracking.
"""

import tempfile
import threading
import time
import uuid
from pathlib import Path
from typing import Dict

from flask import Flask, jsonify, request, send_file
from flask_cors import CORS
from werkzeug.utils import secure_filename

# Add parent directory to path to import convertmorph
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from convertmorph import (
    CompressionOptions,
    JobError,
    PDFAnalyzer,
    PDFCompressor,
    choose_compression_method,
    get_compression_method_explanation,
    validate_compression_method,
    worker_manager,
)
from convertmorph.compressor import LEVELS
from convertmorph.config import settings
from convertmorph.router import CLIENT_SIDE, METHODS, PREFERENCES
from convertmorph.utils import format_size

app = Flask(__name__)
CORS(app)

# Configuration
UPLOAD_FOLDER = Path(tempfile.gettempdir()) / "convertmorph_uploads"
OUTPUT_FOLDER = Path(tempfile.gettempdir()) / "convertmorph_output"
ALLOWED_EXTENSIONS = {"pdf"}
MAX_CONTENT_LENGTH = settings.MAX_UPLOAD_MB * 1024 * 1024

app.config["UPLOAD_FOLDER"] = UPLOAD_FOLDER
app.config["OUTPUT_FOLDER"] = OUTPUT_FOLDER
app.config["MAX_CONTENT_LENGTH"] = MAX_CONTENT_LENGTH

# Create folders
UPLOAD_FOLDER.mkdir(parents=True, exist_ok=True)
OUTPUT_FOLDER.mkdir(parents=True, exist_ok=True)

# Job tracking
jobs: Dict[str, dict] = {}
jobs_lock = threading.Lock()


def allowed_file(filename: str) -> bool:
    """Check if file extension is allowed."""
    return "." in filename and filename.rsplit(".", 1)[1].lower() in ALLOWED_EXTENSIONS


def cleanup_old_files(max_age_hours: int = 1):
    """Clean up files older than max_age_hours."""
    now = time.time()
    max_age_seconds = max_age_hours * 3600

    for folder in [UPLOAD_FOLDER, OUTPUT_FOLDER]:
        for file_path in folder.iterdir():
            if file_path.is_file() and now - file_path.stat().st_mtime > max_age_seconds:
                file_path.unlink(missing_ok=True)


def update_job(job_id: str, **fields):
    with jobs_lock:
        if job_id in jobs:
            jobs[job_id].update(fields)


@app.route("/api/upload", methods=["POST"])
def upload_file():
    """Handle PDF upload and return analysis with a method recommendation."""
    cleanup_old_files()

    if "file" not in request.files:
        return jsonify({"error": "No file provided"}), 400

    file = request.files["file"]

    if file.filename == "":
        return jsonify({"error": "No file selected"}), 400

    if not allowed_file(file.filename):
        return jsonify({"error": "Only PDF files are allowed"}), 400

    preference = request.form.get("preference") or None
    if preference is not None and preference not in PREFERENCES:
        return jsonify({"error": f"Unknown preference: {preference}"}), 400

    # Generate unique ID for this upload
    file_id = str(uuid.uuid4())
    filename = secure_filename(file.filename)
    file_path = UPLOAD_FOLDER / f"{file_id}_{filename}"

    file.save(file_path)

    analysis = PDFAnalyzer.from_path(file_path).analyze()
    decision = choose_compression_method(analysis, preference)

    return jsonify({
        "file_id": file_id,
        "filename": filename,
        "analysis": {
            **analysis.to_dict(),
            "current_size_formatted": format_size(analysis.size_bytes),
        },
        "decision": decision.to_dict(),
        "validation": validate_compression_method(analysis, decision.method).to_dict(),
        "explanation": get_compression_method_explanation(decision).to_dict(),
    })


@app.route("/api/compress", methods=["POST"])
def start_compression():
    """Start a compression job on the chosen backend."""
    data = request.get_json(silent=True)

    if not data:
        return jsonify({"error": "No data provided"}), 400

    file_id = data.get("file_id")
    filename = data.get("filename")
    level = data.get("level", "medium")
    method = data.get("method")
    preference = data.get("preference")

    if not all([file_id, filename]):
        return jsonify({"error": "Missing required fields"}), 400

    if level not in LEVELS:
        return jsonify({"error": f"Unknown level: {level}"}), 400
    if method is not None and method not in METHODS:
        return jsonify({"error": f"Unknown method: {method}"}), 400
    if preference is not None and preference not in PREFERENCES:
        return jsonify({"error": f"Unknown preference: {preference}"}), 400

    # Find the uploaded file
    file_path = UPLOAD_FOLDER / f"{secure_filename(file_id)}_{secure_filename(filename)}"
    if not file_path.exists():
        return jsonify({"error": "File not found. Please upload again."}), 404

    analysis = PDFAnalyzer.from_path(file_path).analyze()
    method = method or choose_compression_method(analysis, preference).method

    validation = validate_compression_method(analysis, method)
    if not validation.valid:
        return jsonify({"error": validation.warning}), 400

    job_id = str(uuid.uuid4())
    output_path = OUTPUT_FOLDER / f"{job_id}_{Path(filename).stem}_compressed.pdf"

    with jobs_lock:
        jobs[job_id] = {
            "status": "starting",
            "stage": "Initializing",
            "progress": 0,
            "method": method,
            "level": level,
            "filename": filename,
            "warning": validation.warning,
            "result": None,
            "error": None,
            "output_file": None,
        }

    if method == CLIENT_SIDE:
        thread = threading.Thread(
            target=run_client_side_job,
            args=(job_id, file_path, output_path, level),
        )
        thread.start()
    else:
        start_server_side_job(job_id, file_path, output_path, level)

    return jsonify({"job_id": job_id, "method": method})


def run_client_side_job(job_id: str, file_path: Path, output_path: Path, level: str):
    """Run the in-process engine in a background thread."""
    def progress_callback(update):
        update_job(
            job_id,
            stage=update.stage,
            progress=update.progress,
            status="processing",
        )

    try:
        compressor = PDFCompressor(CompressionOptions(level=level), progress_callback)
        result = compressor.compress(file_path.read_bytes())

        if result.success:
            output_path.write_bytes(result.compressed_pdf)

        update_job(
            job_id,
            status="completed" if result.success else "failed",
            stage="complete" if result.success else "failed",
            progress=100,
            result=result.to_dict(),
            error=result.error,
            output_file=str(output_path) if result.success else None,
        )

    except Exception as e:
        update_job(job_id, status="failed", stage="failed", error=str(e))


def start_server_side_job(job_id: str, file_path: Path, output_path: Path, level: str):
    """Dispatch the job to the worker pool and record its outcome when done."""
    def on_progress(percent: int):
        update_job(job_id, stage="compressing", progress=percent, status="processing")

    def on_done(future):
        try:
            output = future.result()
            Path(output.output_path).replace(output_path)
        except Exception as e:
            update_job(job_id, status="failed", stage="failed", error=str(e))
            return

        update_job(
            job_id,
            status="completed",
            stage="complete",
            progress=100,
            result=output.to_dict(),
            output_file=str(output_path),
        )

    try:
        future = worker_manager.compress_pdf(str(file_path), level, on_progress)
    except JobError as e:
        update_job(job_id, status="failed", stage="failed", error=str(e))
        return
    future.add_done_callback(on_done)


@app.route("/api/job/<job_id>")
def get_job_status(job_id: str):
    """Get job status and progress."""
    with jobs_lock:
        if job_id not in jobs:
            return jsonify({"error": "Job not found"}), 404

        job = jobs[job_id].copy()

    return jsonify(job)


@app.route("/api/download/<job_id>")
def download_file(job_id: str):
    """Download the compressed PDF."""
    with jobs_lock:
        if job_id not in jobs:
            return jsonify({"error": "Job not found"}), 404

        job = jobs[job_id].copy()

    if job["status"] != "completed":
        return jsonify({"error": "Job not completed"}), 400

    file_path = Path(job["output_file"])
    if not file_path.exists():
        return jsonify({"error": "File no longer available"}), 404

    return send_file(
        file_path,
        as_attachment=True,
        download_name=f"{Path(job['filename']).stem}_compressed.pdf",
    )


@app.route("/api/status")
def pool_status():
    """Get worker pool statistics."""
    return jsonify(worker_manager.get_stats())


if __name__ == "__main__":
    print("Starting ConvertMorph Web Server...")
    print("API available at http://localhost:5000/api")
    app.run(debug=True, host="0.0.0.0", port=5000)
