"""Job status and event stream routes for photorific"""

import json
from collections.abc import Generator

from flask import Blueprint, Response, jsonify

from photorific.config import SSE_KEEPALIVE_SECONDS
from photorific.routes.helpers import get_broadcaster, get_registry

jobs_bp = Blueprint("jobs", __name__)


@jobs_bp.route("/jobs", methods=["GET"])
def list_jobs() -> tuple[Response, int]:
    """Get every tracked job, running or recently finished."""
    return jsonify({"jobs": get_registry().snapshot()}), 200


@jobs_bp.route("/jobs/<job_id>", methods=["GET"])
def get_job(job_id: str) -> tuple[Response, int]:
    """Get the current state of a job.

    Args:
        job_id: The job ID to look up

    Returns:
        JSON response with job state, or 404 once the job has been retired
    """
    job = get_registry().get(job_id)
    if not job:
        return jsonify({"error": "Job not found"}), 404
    return jsonify(job.to_dict()), 200


@jobs_bp.route("/events", methods=["GET"])
def stream_events() -> Response:
    """Stream job and result events via Server-Sent Events.

    The first event is a jobs_list snapshot; every published event follows
    in order. A comment line is sent when the stream has been idle for
    SSE_KEEPALIVE_SECONDS.
    """
    broadcaster = get_broadcaster()
    subscription = broadcaster.subscribe()

    def generate() -> Generator[str, None, None]:
        try:
            while not subscription.closed:
                data = subscription.get(timeout=SSE_KEEPALIVE_SECONDS)
                if data is None:
                    yield ": keep-alive\n\n"
                    continue
                yield f"data: {json.dumps(data)}\n\n"
        finally:
            broadcaster.unsubscribe(subscription)

    return Response(
        generate(),
        mimetype="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
