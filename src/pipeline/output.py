"""JSON output formatter for run reports and discovered URL lists.

The run report has four sections:
- summary: totals, success rate, duration, cache hits
- methods: successful tasks per extraction method ("cache" for cache hits)
- errors: count per error type plus the individual error records
- recipes: the validated extraction results
"""

import json
from pathlib import Path
from typing import Any, Dict, List

from src.models.data_models import BatchRunStats, CrawlResult


class JSONOutputFormatter:
    """
    Formats pipeline output as JSON.

    Example run report:
    {
        "summary": {
            "total_processed": 10,
            "successful": 7,
            "failed": 3,
            "success_rate": 0.7,
            "duration_ms": 5321.4,
            "cache_hits": 2
        },
        "methods": {"structured": 4, "generic": 1, "cache": 2},
        "errors": {
            "by_type": {"fetch_error": 2, "extraction_exhausted": 1},
            "records": [...]
        },
        "recipes": [...]
    }
    """

    def format(self, stats: BatchRunStats) -> Dict[str, Any]:
        """
        Format run statistics as a JSON-serializable dictionary.

        Args:
            stats: Snapshot returned by the batch controller

        Returns:
            Dictionary with summary, methods, errors and recipes sections
        """
        return {
            "summary": self._format_summary(stats),
            "methods": dict(sorted(stats.method_counts.items())),
            "errors": {
                "by_type": dict(sorted(stats.error_breakdown.items())),
                "records": [
                    {
                        "url": record.url,
                        "error": record.error,
                        "error_type": record.error_type,
                        "timestamp": record.timestamp,
                    }
                    for record in stats.errors
                ],
            },
            "recipes": [result.to_dict() for result in stats.successful_results],
        }

    def _format_summary(self, stats: BatchRunStats) -> Dict[str, Any]:
        return {
            "total_processed": stats.total_processed,
            "successful": stats.successful,
            "failed": stats.failed,
            "success_rate": round(stats.success_rate, 4),
            "duration_ms": round(stats.duration_ms, 1),
            "cache_hits": stats.cache_hits,
        }

    def format_discovery(self, crawl_results: List[CrawlResult]) -> Dict[str, Any]:
        """Format crawl results as {"targets": [...], "total_urls": n}."""
        return {
            "targets": [
                {
                    "name": result.target.name,
                    "base_url": result.target.base_url,
                    "discovered_via": result.discovered_via,
                    "url_count": len(result.urls),
                    "urls": result.urls,
                    "errors": result.errors,
                    "duration_ms": round(result.duration_ms, 1),
                }
                for result in crawl_results
            ],
            "total_urls": sum(len(result.urls) for result in crawl_results),
        }

    def save(self, stats: BatchRunStats, output_path: str) -> None:
        """
        Save the run report as pretty-printed JSON.

        Args:
            stats: Batch run statistics
            output_path: Destination file; parent directories are created
        """
        self._write(self.format(stats), output_path)

    def save_discovery(self, crawl_results: List[CrawlResult], output_path: str) -> None:
        self._write(self.format_discovery(crawl_results), output_path)

    @staticmethod
    def _write(data: Dict[str, Any], output_path: str) -> None:
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
