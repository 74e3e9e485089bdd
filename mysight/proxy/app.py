"""
MySight Inference Proxy - FastAPI Server

Relays image-classification requests to the Hugging Face inference API
so that the access token never leaves the server, and serves the
client configuration script.
Run: mysight serve --port 8787
"""

import logging
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ValidationError, field_validator

from ..utils import Config

logger = logging.getLogger(__name__)

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

ALLOW_ORIGIN = {"Access-Control-Allow-Origin": "*"}

PREFLIGHT_HEADERS = {
    **ALLOW_ORIGIN,
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Max-Age": "86400",
}

CONFIG_SCRIPT = """// MySight configuration
// Generated from the server environment

const CONFIG = {{
    // Google Cloud Vision API key
    GOOGLE_VISION_API_KEY: {google_vision_api_key},

    // Hugging Face API token
    HF_TOKEN: {hf_token}
}};

if (CONFIG.HF_TOKEN) {{
    window.HF_TOKEN = CONFIG.HF_TOKEN;
}}

if (CONFIG.GOOGLE_VISION_API_KEY) {{
    window.GOOGLE_VISION_API_KEY = CONFIG.GOOGLE_VISION_API_KEY;
}}
"""


class InferenceRequest(BaseModel):
    model: str
    imageBase64: str

    @field_validator("model", "imageBase64")
    @classmethod
    def not_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("must not be empty")
        return value


def escape_js_string(value: Optional[str]) -> str:
    """Quote a value as a single-quoted JavaScript string literal."""
    if not value:
        return "''"
    escaped = value.replace("\\", "\\\\").replace("'", "\\'").replace("\n", "\\n")
    return f"'{escaped}'"


def error_response(status: int, body: dict) -> JSONResponse:
    return JSONResponse(body, status_code=status, headers=ALLOW_ORIGIN)


async def forward_inference(
    client: httpx.AsyncClient,
    endpoints: list[str],
    request: InferenceRequest,
    token: str,
) -> tuple[Optional[httpx.Response], str]:
    """Post an inference request to the first endpoint that knows the model.

    Endpoints are tried in order; only a 404 or a transport error moves
    on to the next one.

    Returns:
        The last upstream response (None if no endpoint was reachable)
        and the last error text seen.
    """
    response = None
    last_error = ""

    for template in endpoints:
        url = template.format(model=request.model)
        try:
            response = await client.post(
                url,
                json={"inputs": request.imageBase64},
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.TransportError as e:
            logger.warning(f"Endpoint {url} unreachable: {e}")
            last_error = str(e)
            continue

        if response.status_code != 404:
            break

        logger.info(f"Endpoint {url} returned 404, trying next...")
        last_error = response.text

    return response, last_error


def create_app(
    config: Optional[Config] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the proxy application.

    Args:
        config: Configuration instance.
        transport: Custom httpx transport for upstream calls.
    """
    config = config or Config()

    app = FastAPI(
        title="MySight Inference Proxy",
        description="Hugging Face inference relay and client configuration",
        version="1.0.0",
    )

    async def handle_inference(request: Request) -> Response:
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=PREFLIGHT_HEADERS)

        if request.method != "POST":
            return Response("Method not allowed", status_code=405)

        # Read per request so a rotated secret applies without restart
        token = config.hf_token
        if not token:
            logger.error("HF_TOKEN is not configured")
            return error_response(500, {"error": "HF_TOKEN not configured"})

        try:
            body = InferenceRequest.model_validate(await request.json())
        except (ValueError, ValidationError) as e:
            logger.debug(f"Rejected inference request: {e}")
            return error_response(400, {"error": "Missing model or imageBase64"})

        endpoints = config.proxy_endpoints
        try:
            async with httpx.AsyncClient(timeout=config.proxy_timeout, transport=transport) as client:
                upstream, last_error = await forward_inference(client, endpoints, body, token)
        except Exception as e:
            logger.error(f"Inference proxy error: {e}")
            return error_response(500, {"error": str(e)})

        tried = [template.format(model=body.model) for template in endpoints]

        if upstream is None:
            return error_response(502, {
                "error": "Hugging Face API unreachable",
                "status": 502,
                "details": last_error,
                "triedEndpoints": tried,
            })

        if upstream.status_code == 404:
            return error_response(404, {
                "error": "Hugging Face API error",
                "status": 404,
                "details": last_error or "All endpoints returned 404",
                "triedEndpoints": tried,
            })

        if not upstream.is_success:
            logger.warning(f"Model {body.model} answered {upstream.status_code}")
            return error_response(upstream.status_code, {
                "error": "Hugging Face API error",
                "status": upstream.status_code,
                "details": upstream.text,
            })

        logger.info(f"Relayed classification of {body.model}")
        return Response(
            content=upstream.content,
            media_type="application/json",
            headers=ALLOW_ORIGIN,
        )

    app.add_api_route("/api/huggingface", handle_inference, methods=ALL_METHODS)
    app.add_api_route("/", handle_inference, methods=ALL_METHODS, include_in_schema=False)

    @app.get("/config.js")
    async def config_script():
        content = CONFIG_SCRIPT.format(
            google_vision_api_key=escape_js_string(config.google_vision_api_key),
            hf_token=escape_js_string(config.hf_token),
        )
        return Response(
            content,
            media_type="application/javascript; charset=utf-8",
            headers={"Cache-Control": "public, max-age=3600"},
        )

    return app
