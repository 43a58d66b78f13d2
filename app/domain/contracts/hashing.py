"""Content and signature hashes for contracts"""

import hashlib
import json
from datetime import date, datetime
from typing import Any, Optional


def canonicalize(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): canonicalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [canonicalize(v) for v in value]
    return value


def compute_content_hash(
    contract_id: str,
    version: int,
    metadata: Optional[dict],
    binding_terms: Optional[dict],
) -> str:
    """SHA-256 over the canonical JSON of everything a signer agrees to"""
    payload = {
        "contract_id": contract_id,
        "version": version,
        "metadata": canonicalize(metadata or {}),
        "binding_terms": canonicalize(binding_terms or {}),
    }
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def compute_signature_hash(
    artifact: str,
    contract_id: str,
    version: int,
    content_hash: Optional[str],
    signed_at: datetime,
) -> str:
    """Bind a signature artifact to one contract version and content.

    The hash changes whenever the version or content changes, so a signature
    captured for version N cannot be replayed against version N+1.
    """
    parts = [
        hashlib.sha256(artifact.encode("utf-8")).hexdigest(),
        contract_id,
        str(version),
        content_hash or "",
        signed_at.isoformat(),
    ]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


def binding_terms_snapshot(terms) -> Optional[dict]:
    """Plain-dict copy of a BindingTerms row (without bookkeeping columns)"""
    if terms is None:
        return None
    return canonicalize(
        {
            "start_date": terms.start_date,
            "completion_date": terms.completion_date,
            "warranty_days": terms.warranty_days,
            "access_hours": terms.access_hours,
            "materials_by": terms.materials_by,
            "payment_method": terms.payment_method,
            "payment_schedule": terms.payment_schedule,
            "penalty_rate_per_day": terms.penalty_rate_per_day,
            "cleanup_disposal": terms.cleanup_disposal,
            "use_deposit_escrow": terms.use_deposit_escrow,
        }
    )
