"""foliotree.server.app - Flask app factory and REST API routes.

This is a THIN REST wrapper: every route marshals arguments, calls one
ContentTreeService operation and shapes the response. No tree logic
lives here.

Responses use a JSON envelope: ``{"ok": true, ...}`` on success and
``{"ok": false, "error": CODE, "message": ...}`` on refusal.
"""

from __future__ import annotations

import hmac
import logging
from collections.abc import Mapping
from typing import Any

from flask import Flask, Response, jsonify, request
from flask_cors import CORS

from foliotree import __version__
from foliotree.graph.errors import ErrorCode, ErrorKind, StoreError, TreeError
from foliotree.graph.serialize import node_to_dict, normalize_payload
from foliotree.graph.service import SCOPE_ADMIN, UNSET, ContentTreeService
from foliotree.server.ratelimit import RateLimiter, TokenBucketLimiter, client_ip

logger = logging.getLogger(__name__)

_STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.CONSTRAINT: 409,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.STORE: 500,
}

_TRUTHY = {"1", "true", "yes", "on"}


def _flag(value: str | None) -> bool:
    return (value or "").strip().lower() in _TRUTHY


def error_response(error: TreeError) -> tuple[Response, int]:
    """Render a refusal with the status its kind maps to."""
    body: dict[str, Any] = {"ok": False, **error.to_dict()}
    return jsonify(body), _STATUS_BY_KIND[error.kind]


def _fail(code: ErrorCode, message: str, node_id: str | None = None) -> tuple[Response, int]:
    return error_response(TreeError(code=code, message=message, node_id=node_id))


def _unauthorized() -> tuple[Response, int]:
    return jsonify({"ok": False, "error": "UNAUTHORIZED", "message": "Admin token required"}), 401


def create_app(
    service: ContentTreeService,
    config: dict[str, Any],
    rate_limiter: RateLimiter | None = None,
) -> Flask:
    """Create the Flask application with REST API routes.

    Args:
        service: The content tree service to expose.
        config: foliotree configuration dict.
        rate_limiter: Limiter for public read routes. Built from the
            ``[rate_limit]`` config when None; disabled when that section
            says ``enabled = false``.

    Returns:
        Configured Flask application.
    """
    app = Flask(__name__)
    CORS(app)

    server_config = config.get("server", {})
    admin_token = str(server_config.get("admin_token") or "")
    site_url = str(config.get("site", {}).get("url") or "http://localhost:3000")

    limit_config = config.get("rate_limit", {})
    if rate_limiter is None and limit_config.get("enabled", True):
        rate_limiter = TokenBucketLimiter(
            capacity=int(limit_config.get("capacity", 240)),
            window_seconds=float(limit_config.get("window_seconds", 60)),
            max_buckets=int(limit_config.get("max_buckets", 10_000)),
        )
    trusted_proxies = int(limit_config.get("trusted_proxies", 0))

    # Tree reads must never be served stale
    @app.after_request
    def _no_cache(response):
        response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
        response.headers["Pragma"] = "no-cache"
        response.headers["Expires"] = "0"
        return response

    @app.errorhandler(StoreError)
    def _store_error(e: StoreError):
        # Store text can leak internals; it goes to the log only
        logger.error("Store failure on %s %s: %s", request.method, request.path, e, exc_info=e)
        return (
            jsonify(
                {
                    "ok": False,
                    "error": ErrorCode.STORE_ERROR.value,
                    "message": "The content store is unavailable",
                }
            ),
            500,
        )

    def _is_admin() -> bool:
        if not admin_token:
            return True
        header = request.headers.get("Authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token:
            return False
        return hmac.compare_digest(token.strip(), admin_token)

    def _rate_limited() -> tuple[Response, int] | None:
        if rate_limiter is None:
            return None
        decision = rate_limiter.check(
            client_ip(request.headers, request.remote_addr, trusted_proxies)
        )
        if decision.allowed:
            return None
        response = jsonify(
            {"ok": False, "error": "RATE_LIMITED", "message": "Too many requests"}
        )
        response.headers["Retry-After"] = str(decision.retry_after)
        return response, 429

    def _json_body() -> Mapping[str, Any] | None:
        body = request.get_json(silent=True)
        return body if isinstance(body, Mapping) else None

    # ─────────────────────────────────────────────────────────────────
    # Status
    # ─────────────────────────────────────────────────────────────────

    @app.route("/api/status")
    async def api_status():
        """GET /api/status - Node counts and version."""
        summary = await service.summary()
        return jsonify({"ok": True, "version": __version__, **summary})

    # ─────────────────────────────────────────────────────────────────
    # Admin content-node routes
    # ─────────────────────────────────────────────────────────────────

    @app.route("/api/content-nodes", methods=["GET"])
    async def api_list_nodes():
        """GET /api/content-nodes - Flat admin listing.

        Query parameters:
            parentId: Only children of this node ("" or "null" for roots).
        """
        if not _is_admin():
            return _unauthorized()
        if "parentId" in request.args:
            raw = request.args.get("parentId", "")
            nodes = await service.list_nodes(None if raw in ("", "null") else raw)
        else:
            nodes = await service.list_nodes()
        return jsonify({"ok": True, "nodes": [node_to_dict(node) for node in nodes]})

    @app.route("/api/content-nodes", methods=["POST"])
    async def api_create_node():
        """POST /api/content-nodes - Create a node (appended unless orderIndex given)."""
        if not _is_admin():
            return _unauthorized()
        body = _json_body()
        if body is None:
            return _fail(ErrorCode.INVALID_JSON_BODY, "Request body must be a JSON object")
        result = await service.create_node(body)
        if not result.ok:
            return error_response(result.error)
        return jsonify({"ok": True, "node": node_to_dict(result.unwrap())}), 201

    @app.route("/api/content-nodes/<node_id>", methods=["GET"])
    async def api_get_node(node_id: str):
        """GET /api/content-nodes/<id> - One node."""
        if not _is_admin():
            return _unauthorized()
        result = await service.get_node(node_id)
        if not result.ok:
            return error_response(result.error)
        return jsonify({"ok": True, "node": node_to_dict(result.unwrap())})

    @app.route("/api/content-nodes/<node_id>", methods=["PATCH"])
    async def api_update_node(node_id: str):
        """PATCH /api/content-nodes/<id> - Partial update in one write."""
        if not _is_admin():
            return _unauthorized()
        body = _json_body()
        if body is None:
            return _fail(ErrorCode.INVALID_JSON_BODY, "Request body must be a JSON object")
        result = await service.update_node(node_id, body)
        if not result.ok:
            return error_response(result.error)
        return jsonify({"ok": True, "node": node_to_dict(result.unwrap())})

    @app.route("/api/content-nodes/<node_id>", methods=["DELETE"])
    async def api_delete_node(node_id: str):
        """DELETE /api/content-nodes/<id> - Delete a childless node."""
        if not _is_admin():
            return _unauthorized()
        result = await service.delete_node(node_id)
        if not result.ok:
            return error_response(result.error)
        return jsonify({"ok": True, "deleted": node_id})

    @app.route("/api/content-nodes/<node_id>/move", methods=["POST"])
    async def api_move_node(node_id: str):
        """POST /api/content-nodes/<id>/move - Body: {"parentId": id | null}."""
        if not _is_admin():
            return _unauthorized()
        body = _json_body()
        if body is None:
            return _fail(ErrorCode.INVALID_JSON_BODY, "Request body must be a JSON object")
        fields = normalize_payload(body, ("parent_id",))
        if "parent_id" not in fields:
            return _fail(ErrorCode.NO_FIELDS_TO_UPDATE, "parentId is required", node_id)
        result = await service.move_node(node_id, fields["parent_id"])
        if not result.ok:
            return error_response(result.error)
        return jsonify({"ok": True, "node": node_to_dict(result.unwrap())})

    @app.route("/api/content-nodes/<node_id>/reorder", methods=["POST"])
    async def api_reorder_node(node_id: str):
        """POST /api/content-nodes/<id>/reorder - Body: {"direction": "up" | "down"}."""
        if not _is_admin():
            return _unauthorized()
        body = _json_body()
        if body is None:
            return _fail(ErrorCode.INVALID_JSON_BODY, "Request body must be a JSON object")
        result = await service.reorder_node(node_id, body.get("direction"))
        if not result.ok:
            return error_response(result.error)
        written = result.value or ()
        return jsonify(
            {
                "ok": True,
                "changed": bool(written),
                "nodes": [node_to_dict(node) for node in written],
            }
        )

    @app.route("/api/content-nodes/<node_id>/retype", methods=["POST"])
    async def api_retype_node(node_id: str):
        """POST /api/content-nodes/<id>/retype - Body: {"nodeType": ..., "refId"?: ...}."""
        if not _is_admin():
            return _unauthorized()
        body = _json_body()
        if body is None:
            return _fail(ErrorCode.INVALID_JSON_BODY, "Request body must be a JSON object")
        fields = normalize_payload(body, ("node_type", "ref_id"))
        result = await service.retype_node(
            node_id, fields.get("node_type"), fields.get("ref_id", UNSET)
        )
        if not result.ok:
            return error_response(result.error)
        return jsonify({"ok": True, "node": node_to_dict(result.unwrap())})

    @app.route("/api/refs/<ref_id>/nodes", methods=["DELETE"])
    async def api_remove_ref_nodes(ref_id: str):
        """DELETE /api/refs/<ref_id>/nodes - Drop the nodes of a deleted project/blog."""
        if not _is_admin():
            return _unauthorized()
        cleanup = await service.remove_nodes_for_ref(ref_id)
        return jsonify({"ok": True, **cleanup.to_dict()})

    @app.route("/api/mutations")
    def api_mutations():
        """GET /api/mutations - Recent writes, newest first.

        Query parameters:
            limit: Maximum records (default 50)
            nodeId: Only writes that targeted this node, newest first
        """
        if not _is_admin():
            return _unauthorized()
        try:
            limit = int(request.args.get("limit", "50"))
        except ValueError:
            limit = 50
        node_id = request.args.get("nodeId")
        if node_id:
            entries = list(reversed(service.mutation_log.for_node(node_id)))[: max(limit, 0)]
        else:
            entries = service.mutation_log.recent(limit)
        return jsonify({"ok": True, "mutations": [entry.to_dict() for entry in entries]})

    @app.route("/api/mutations/<mutation_id>")
    def api_mutation(mutation_id: str):
        """GET /api/mutations/<id> - One recorded write."""
        if not _is_admin():
            return _unauthorized()
        entry = service.mutation_log.get(mutation_id)
        if entry is None:
            return _fail(ErrorCode.NOT_FOUND, f"Mutation '{mutation_id}' not found")
        return jsonify({"ok": True, "mutation": entry.to_dict()})

    # ─────────────────────────────────────────────────────────────────
    # Public reads
    # ─────────────────────────────────────────────────────────────────

    @app.route("/api/sections/tree")
    async def api_sections_tree():
        """GET /api/sections/tree - Depth-limited pre-order tree listing.

        Query parameters:
            scope: "public" (default) or "admin" (admin token required)
            includeUnpublished: Admin scope only
            maxDepth: 1..tree.max_depth (default tree.max_depth)
            rootId: Restrict to one subtree
        """
        limited = _rate_limited()
        if limited is not None:
            return limited
        scope = request.args.get("scope", "public").strip().lower()
        if scope == SCOPE_ADMIN and not _is_admin():
            return _unauthorized()
        result = await service.list_tree(
            scope=scope,
            include_unpublished=_flag(request.args.get("includeUnpublished")),
            max_depth=request.args.get("maxDepth"),
            root_id=request.args.get("rootId"),
        )
        if not result.ok:
            return error_response(result.error)
        return jsonify({"ok": True, **result.unwrap().to_dict()})

    @app.route("/api/seo/sitemap")
    async def api_sitemap():
        """GET /api/seo/sitemap - Sitemap as JSON, or XML with format=xml.

        ``includeUnpublished`` needs the admin token.
        """
        limited = _rate_limited()
        if limited is not None:
            return limited
        include_unpublished = _flag(request.args.get("includeUnpublished"))
        if include_unpublished and not _is_admin():
            return _unauthorized()
        report = await service.build_sitemap(site_url, include_unpublished=include_unpublished)
        if request.args.get("format", "json").lower() == "xml":
            return Response(report.to_xml(), mimetype="application/xml")
        return jsonify({"ok": True, **report.to_dict()})

    return app
