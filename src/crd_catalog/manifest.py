"""
Manifest Parser

Decodes one topic's TopicMetadata.json into a TopicManifest. Pure: no
filesystem access, no side effects.
"""

import json
from typing import Optional, Union

from pydantic import ValidationError

from crd_catalog.errors import MalformedManifest
from crd_catalog.models import TopicManifest


def parse_manifest(
    data: Union[bytes, str],
    source: Optional[str] = None,
) -> TopicManifest:
    """
    Parse manifest document bytes.
    
    Args:
        data: Raw manifest document
        source: Optional path used in error messages
        
    Returns:
        TopicManifest instance
        
    Raises:
        MalformedManifest: invalid JSON, not an object, or schema violation
    """
    where = source or "<manifest>"
    try:
        document = json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedManifest(f"{where}: invalid JSON: {exc}", path=source) from exc
    
    if not isinstance(document, dict):
        raise MalformedManifest(
            f"{where}: expected a JSON object, got {type(document).__name__}",
            path=source,
        )
    
    try:
        return TopicManifest.model_validate(document)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in exc.errors()
        )
        raise MalformedManifest(
            f"{where}: {problems}",
            topic=document.get("topic") if isinstance(document.get("topic"), str) else None,
            path=source,
        ) from exc
