import asyncio
import io
import json
import os
import uuid
import zipfile

import structlog
from flask import Flask, jsonify, request, send_file

from membercert import config
from membercert.certificate_generator import generate_certificate
from membercert.data_loader import load_data, records_from_frame
from membercert.errors import CertificateGenerationError, InvalidPayloadError, MissingFieldError
from membercert.image_loader import load_institution_images
from membercert.log import configure_logging
from membercert.models import CertificateRecord, InstitutionRecord, coerce_record
from membercert.verification import verify_payload

configure_logging(config.LOG_LEVEL, config.LOG_JSON)
logger = structlog.get_logger(__name__)

app = Flask(__name__)

GENERIC_FAILURE = "Failed to generate certificate"


# ─────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────
def _origin():
    """Origin for verification URLs: configured value, else this host."""
    return config.VERIFY_ORIGIN or request.host_url.rstrip("/")


def _json_body():
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return None
    return body


def _pdf_response(artifact):
    response = send_file(
        io.BytesIO(artifact.content),
        mimetype="application/pdf",
        as_attachment=True,
        download_name=artifact.filename,
    )
    response.headers["X-Verification-Url"] = artifact.verification_url
    response.headers["X-Certificate-Serial"] = artifact.artifacts.serial
    return response


# ─────────────────────────────────────────────────────────────
# Routes
# ─────────────────────────────────────────────────────────────

@app.route("/api/certificates", methods=["POST"])
def create_certificate():
    """Generate one certificate PDF from JSON certificate + institution records."""
    body = _json_body()
    if body is None:
        return jsonify({"error": "Expected a JSON object body."}), 400

    try:
        artifact = generate_certificate(
            body.get("certificate"),
            body.get("institution"),
            _origin(),
            body.get("filename"),
        )
    except MissingFieldError as e:
        logger.warning("certificate_rejected", field=e.field)
        return jsonify({"error": GENERIC_FAILURE, "detail": str(e), "field": e.field}), 400
    except CertificateGenerationError:
        logger.exception("certificate_generation_failed")
        return jsonify({"error": GENERIC_FAILURE}), 500

    return _pdf_response(artifact)


@app.route("/api/certificates/batch", methods=["POST"])
def create_certificate_batch():
    """
    Generate certificates for every row of an uploaded roster and return a ZIP.

    Form fields: data (CSV/XLSX roster), institution (JSON object).
    """
    data_file = request.files.get("data")
    if not data_file or not data_file.filename:
        return jsonify({"error": "A roster file is required."}), 400

    try:
        institution = coerce_record(InstitutionRecord, json.loads(request.form.get("institution", "null")))
    except (ValueError, CertificateGenerationError) as e:
        return jsonify({"error": f"Invalid institution: {e}"}), 400

    os.makedirs(config.UPLOADS, exist_ok=True)
    sid = uuid.uuid4().hex[:10]
    data_ext = os.path.splitext(data_file.filename)[1] or ".csv"
    data_path = os.path.join(config.UPLOADS, f"{sid}_data{data_ext}")
    data_file.save(data_path)

    try:
        df = load_data(data_path)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    finally:
        os.remove(data_path)

    origin = _origin()
    # Institution images are shared by every row, fetch them once
    images = asyncio.run(load_institution_images(institution))
    errors = []
    success_count = 0
    written = set()
    buf = io.BytesIO()

    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for idx, record in records_from_frame(df):
            try:
                artifact = generate_certificate(record, institution, origin, images=images)
            except CertificateGenerationError as e:
                errors.append(f"Row {idx + 1}: {str(e)[:200]}")
                logger.warning("batch_row_failed", row=idx + 1, error=str(e))
                continue
            name = artifact.filename
            if name in written:
                # same member twice in one roster, e.g. a renewal
                stem, ext = os.path.splitext(name)
                name = f"{stem}-row{idx + 1}{ext}"
            written.add(name)
            zf.writestr(name, artifact.content)
            success_count += 1

    logger.info("batch_generated", succeeded=success_count, failed=len(errors))

    if success_count == 0:
        error_msg = "Failed to generate any certificates."
        if errors:
            error_msg += " Errors: " + " | ".join(errors[:3])
        return jsonify({"error": error_msg}), 500

    buf.seek(0)
    response = send_file(buf, mimetype="application/zip", as_attachment=True,
                         download_name="certificates.zip")
    if errors:
        response.headers["X-Batch-Errors"] = str(len(errors))
    return response


@app.route("/api/verify", methods=["POST"])
def verify_api():
    """
    Check a scanned QR payload against the canonical certificate record.

    The caller looks the record up; this service holds no certificates.
    """
    body = _json_body()
    if body is None:
        return jsonify({"error": "Expected a JSON object body."}), 400

    try:
        certificate = coerce_record(CertificateRecord, body.get("certificate"))
        result = verify_payload(
            body.get("payload"),
            certificate,
            body.get("institution_abbreviation") or "",
            body.get("origin") or _origin(),
        )
    except (InvalidPayloadError, CertificateGenerationError) as e:
        return jsonify({"valid": False, "error": str(e)}), 400

    return jsonify({
        "valid": result.valid,
        "mismatches": result.mismatches,
        "expected": result.expected.model_dump(),
    })


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", "5001")), debug=False)
