"""
URL helpers and kernel spec normalization.

Jupyter servers return kernel specs wrapped in an envelope:

    {"name": "python3", "spec": {"display_name": ...}, "resources": {...}}

with resource paths relative to the server. normalize_kernelspecs() turns
such a payload into KernelSpec objects; with rewrite=True (remote mode) the
resource paths become absolute URLs carrying the auth token, so a front-end
on another origin can load them.

Every function here is total: malformed input degrades to defaults.
"""

from __future__ import annotations

from typing import Any, Mapping
from urllib.parse import quote, urlsplit

from hybrid_kernels.kernel.contracts import KernelSpec, SpecRegistry

# Characters encodeURIComponent leaves alone besides alphanumerics and "_.-~"
_TOKEN_SAFE = "!*'()"


def url_path_join(*pieces: str) -> str:
    """Join URL pieces with exactly one slash between them.

    Keeps a leading slash of the first piece and a trailing slash of the
    last one.
    """
    initial = pieces[0].startswith("/") if pieces else False
    final = pieces[-1].endswith("/") if pieces else False
    stripped = [s.strip("/") for s in pieces]
    result = "/".join(s for s in stripped if s)
    if initial:
        result = "/" + result
    if final and not result.endswith("/"):
        result = result + "/"
    if result == "//":
        result = "/"
    return result


def url_origin(url: str) -> str:
    """scheme://host[:port] of url, or "" if url has no scheme/host."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return ""
    if not parts.scheme or not parts.netloc:
        return ""
    return f"{parts.scheme}://{parts.netloc}"


def append_token(url: str, token: str) -> str:
    """Append token=<url-encoded> to url. No-op for an empty token."""
    if not token:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}token={quote(token, safe=_TOKEN_SAFE)}"


def absolute_resource_url(path: str, base_url: str) -> str:
    """Make a resource path absolute against base_url.

    - http(s):// URLs are returned unchanged.
    - Root-relative paths ("/static/...") are relative to the server's domain
      root, so only the origin of base_url is kept.
    - Anything else is joined below the full base_url.
    """
    if path.startswith(("http://", "https://")):
        return path
    if path.startswith("/"):
        origin = url_origin(base_url)
        return f"{origin}{path}" if origin else path
    return url_path_join(base_url, path)


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def rewrite_kernelspec(
    name: str,
    raw: Any,
    base_url: str = "",
    token: str = "",
    rewrite: bool = True,
) -> KernelSpec:
    """Flatten one server spec entry; optionally make its resources absolute."""
    entry = _mapping(raw)
    nested = entry.get("spec")
    spec = nested if isinstance(nested, Mapping) else entry

    resources = entry.get("resources")
    if not isinstance(resources, Mapping):
        resources = _mapping(spec.get("resources"))

    transformed: dict[str, str] = {}
    for key, path in resources.items():
        if not isinstance(path, str):
            continue
        if rewrite:
            transformed[str(key)] = append_token(
                absolute_resource_url(path, base_url), token
            )
        else:
            transformed[str(key)] = path

    argv = spec.get("argv")
    return KernelSpec(
        name=str(spec.get("name") or entry.get("name") or name),
        display_name=str(spec.get("display_name") or name),
        language=str(spec.get("language") or ""),
        argv=tuple(str(a) for a in argv) if isinstance(argv, (list, tuple)) else (),
        env=dict(_mapping(spec.get("env"))),
        metadata=dict(_mapping(spec.get("metadata"))),
        resources=transformed,
    )


def normalize_kernelspecs(
    payload: Any,
    base_url: str = "",
    token: str = "",
    rewrite: bool = False,
) -> SpecRegistry | None:
    """Convert a /api/kernelspecs payload into a SpecRegistry.

    Returns None when the payload carries no kernelspecs mapping at all.
    """
    data = _mapping(payload)
    raw_specs = data.get("kernelspecs")
    if not isinstance(raw_specs, Mapping):
        return None

    kernelspecs: dict[str, KernelSpec] = {}
    for name, raw in raw_specs.items():
        if not isinstance(raw, Mapping):
            continue
        kernelspecs[str(name)] = rewrite_kernelspec(
            str(name), raw, base_url=base_url, token=token, rewrite=rewrite
        )

    default = data.get("default")
    return SpecRegistry(
        default=default if isinstance(default, str) else "",
        kernelspecs=kernelspecs,
    )
