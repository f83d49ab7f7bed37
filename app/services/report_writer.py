"""
Report Writer
=============
Serializes a validated Report into the exported audit document (JSON).

The file name comes from hotel name and city (see deep_link.export_filename)
and is always a single path component inside output_dir. The export
endpoint gives every download its own scratch directory and removes it
once the response has been sent.
"""
import json
import logging
import os
from datetime import datetime, timezone
from typing import Optional

from app.core.profile import AuditProfile, load_profile
from app.models.report import Report
from app.services.deep_link import export_filename
from app.services.report_views import score_band, sort_ota_audit

logger = logging.getLogger(__name__)


class ReportWriter:
    """
    Service responsible for compiling a finished audit into an export
    document for download or archiving.
    """

    @staticmethod
    def build_document(report: Report, profile: Optional[AuditProfile] = None) -> dict:
        """
        Compile the export document: metadata + report (channels in display order).
        """
        profile = profile or load_profile()
        body = report.to_wire()
        body["otaAudit"] = [
            item.model_dump(mode="json", by_alias=True)
            for item in sort_ota_audit(report.ota_audit, profile)
        ]
        summary = report.executive_summary
        return {
            "metadata": {
                "title": f"{profile.brand} Commercial Audit Report",
                "hotel": summary.hotel_name,
                "city": summary.city,
                "evaluation_type": summary.evaluation_type.value,
                "score_band": score_band(summary.average_score),
                "profile_version": profile.version,
                "generated_at": datetime.now(timezone.utc).isoformat(),
            },
            "report": body,
        }

    @staticmethod
    def write_report(
        report: Report,
        output_dir: str,
        profile: Optional[AuditProfile] = None,
    ) -> Optional[str]:
        """
        Write the export document.

        Returns
        -------
        str or None
            Absolute path of the written file, or None if writing failed.
        """
        try:
            profile = profile or load_profile()
            os.makedirs(output_dir, exist_ok=True)
            root = os.path.realpath(output_dir)
            path = os.path.realpath(
                os.path.join(root, export_filename(report, "json", profile))
            )
            if os.path.dirname(path) != root:
                logger.error("Refusing audit export outside %s: %s", root, path)
                return None
            logger.info("Writing audit export to %s", path)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(ReportWriter.build_document(report, profile), f, indent=2, ensure_ascii=False)
            return path
        except OSError as e:
            logger.error("Failed to write audit export: %s", e, exc_info=True)
            return None
