"""Alertmanager configuration checks and payload encoding.

A tenant's alertmanager.yml is checked locally before anything is sent:
it must parse, declare a ``route`` with a receiver, and every receiver a
route refers to must be defined. The remote side still runs its own,
stricter validation.
"""

from __future__ import annotations

from typing import Mapping

import yaml

from rulesync.exceptions import SerializationError
from rulesync.models.tenant import AlertmanagerSpec

ALERTMANAGER_DOCUMENT = "alertmanager"


def verify(spec: AlertmanagerSpec) -> dict:
    """Check an Alertmanager configuration and return it parsed.

    Raises:
        SerializationError: If the configuration or a template name is invalid.
    """
    try:
        data = yaml.safe_load(spec.config)
    except yaml.YAMLError as e:
        raise SerializationError(f"config is not valid YAML: {e}", document=ALERTMANAGER_DOCUMENT) from e
    if not isinstance(data, dict):
        raise SerializationError("config must be a mapping", document=ALERTMANAGER_DOCUMENT)

    receivers = data.get("receivers") or []
    if not isinstance(receivers, list):
        raise SerializationError("'receivers' must be a list", document=ALERTMANAGER_DOCUMENT)
    names = set()
    for receiver in receivers:
        if not isinstance(receiver, dict) or not receiver.get("name"):
            raise SerializationError("every receiver needs a 'name'", document=ALERTMANAGER_DOCUMENT)
        names.add(str(receiver["name"]))

    route = data.get("route")
    if not isinstance(route, dict):
        raise SerializationError("config has no 'route'", document=ALERTMANAGER_DOCUMENT)
    if not route.get("receiver"):
        raise SerializationError("top-level route has no 'receiver'", document=ALERTMANAGER_DOCUMENT)
    _check_route(route, names)

    for name in spec.templates:
        if not name or "/" in name or name in (".", ".."):
            raise SerializationError(f"invalid template name {name!r}", document=ALERTMANAGER_DOCUMENT)

    return data


def _check_route(route: dict, receivers: set[str]) -> None:
    receiver = route.get("receiver")
    if receiver and str(receiver) not in receivers:
        raise SerializationError(
            f"route refers to undefined receiver '{receiver}'", document=ALERTMANAGER_DOCUMENT
        )
    children = route.get("routes") or []
    if not isinstance(children, list):
        raise SerializationError("'routes' must be a list", document=ALERTMANAGER_DOCUMENT)
    for child in children:
        if not isinstance(child, dict):
            raise SerializationError("each route must be a mapping", document=ALERTMANAGER_DOCUMENT)
        _check_route(child, receivers)


def encode(config: str, templates: Mapping[str, str]) -> bytes:
    """Body of the Alertmanager configuration API: config plus template files."""
    return yaml.safe_dump(
        {"template_files": dict(templates), "alertmanager_config": config},
        sort_keys=False,
        allow_unicode=True,
    ).encode("utf-8")
