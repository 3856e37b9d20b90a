"""Prometheus metrics endpoint.

Exposes plain-text Prometheus metrics at `/metrics` without external deps,
computed from the archive store on every scrape.

Metrics per tier:
- tsdb_backup_archives{tier}
- tsdb_backup_bytes{tier}
- tsdb_backup_last_backup_timestamp{tier}
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from tsdb_backup.api.deps import require_config
from tsdb_backup.core.config import BackupConfiguration
from tsdb_backup.core.storage import ArchiveFile, list_archives
from tsdb_backup.domain.enums import Tier

router = APIRouter(tags=["metrics"])


@router.get("/metrics", response_class=PlainTextResponse)
def metrics(config: BackupConfiguration = Depends(require_config)) -> str:
    """Serve Prometheus metrics built from the archives on disk."""
    per_tier: dict[Tier, list[ArchiveFile]] = {tier: list_archives(config.tier_path(tier), tier) for tier in Tier}

    lines: list[str] = []

    lines.append("# HELP tsdb_backup_archives Number of archives currently kept per tier")
    lines.append("# TYPE tsdb_backup_archives gauge")
    for tier, archives in per_tier.items():
        lines.append(f'tsdb_backup_archives{{tier="{tier.value}"}} {len(archives)}')

    lines.append("# HELP tsdb_backup_bytes Total size of the archives kept per tier")
    lines.append("# TYPE tsdb_backup_bytes gauge")
    for tier, archives in per_tier.items():
        lines.append(f'tsdb_backup_bytes{{tier="{tier.value}"}} {sum(a.size_bytes for a in archives)}')

    lines.append("# HELP tsdb_backup_last_backup_timestamp Unix timestamp of the newest archive per tier")
    lines.append("# TYPE tsdb_backup_last_backup_timestamp gauge")
    for tier, archives in per_tier.items():
        # Newest first; 0 when the tier is empty
        value = archives[0].modified_at.timestamp() if archives else 0.0
        lines.append(f'tsdb_backup_last_backup_timestamp{{tier="{tier.value}"}} {value}')

    return "\n".join(lines) + "\n"
