"""
Load flows, field catalogs and lead records from JSON files.
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

from quoteflow.utils.schema import FieldCatalog, Flow

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def load_json(path: PathLike) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def flow_stem(path: PathLike) -> str:
    """File name without .json, or without .hl.json for recorded flows."""
    name = Path(path).name
    if name.endswith(".hl.json"):
        return name[: -len(".hl.json")]
    return Path(name).stem


def load_flow(path: PathLike) -> Flow:
    data = load_json(path)
    if isinstance(data, dict) and not data.get("slug"):
        data = {**data, "slug": flow_stem(path)}
    flow = Flow.model_validate(data)
    logger.debug("Loaded flow %s (%d steps) from %s", flow.slug, len(flow.steps), path)
    return flow


def load_catalog(path: PathLike) -> FieldCatalog:
    catalog = FieldCatalog.model_validate(load_json(path))
    logger.debug("Loaded %d field definitions from %s", len(catalog.fields), path)
    return catalog


def load_lead(path: PathLike) -> Dict[str, Any]:
    """A lead file is either the record itself or a stored lead {"id", "data", ...}."""
    data = load_json(path)
    if isinstance(data, dict) and isinstance(data.get("data"), dict) \
            and set(data) <= {"id", "data", "createdAt", "updatedAt"}:
        return data["data"]
    return data
