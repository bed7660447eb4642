#!/usr/bin/env python3
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from backend.database import check_database_health, EXPECTED_TABLES
from config.settings import settings


def check_schema_status():
    """Check that the database is reachable and every table exists"""
    health = check_database_health()
    tables = health.get("tables", [])
    missing = [table for table in EXPECTED_TABLES if table not in tables]
    return {
        "status": "✅ Healthy" if health["status"] == "healthy" and not missing else "❌ Needs attention",
        "database": health["database_url"],
        "connection_test": health["connection_test"],
        "missing_tables": missing,
        "analysis_budget_s": settings.ANALYSIS_TIME_BUDGET_SECONDS,
        "error": health.get("error", ""),
    }


if __name__ == "__main__":
    status = check_schema_status()
    print("🔍 Schedule Intelligence Health:")
    for key, value in status.items():
        print(f"  {key}: {value}")
    sys.exit(0 if status["status"].startswith("✅") else 1)
