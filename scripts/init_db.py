#!/usr/bin/env python3
"""
Create the schedule intelligence tables and optionally load the demo project
"""

import sys
import os
import argparse

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from backend import ScheduleRepository, init_db
from config.settings import settings
from defaults import SAMPLE_PROJECT_ID, SAMPLE_TASKS
from models import Task
from utils.logger import setup_logging


def load_demo_project(repository: ScheduleRepository) -> int:
    tasks = [Task.from_dict(raw, project_id=SAMPLE_PROJECT_ID) for raw in SAMPLE_TASKS]
    return repository.save_tasks(SAMPLE_PROJECT_ID, tasks)


def main():
    parser = argparse.ArgumentParser(description="Initialize the schedule intelligence database")
    parser.add_argument("--demo", action="store_true", help=f"Load the '{SAMPLE_PROJECT_ID}' demo project")
    args = parser.parse_args()

    settings.ensure_directories()
    setup_logging()
    print("🏗️ Schedule Intelligence - Database Initialization")
    print("=" * 50)

    if not init_db():
        print("❌ Database initialization failed, see the log for details")
        return 1
    print("✅ Tables created")

    if args.demo:
        count = load_demo_project(ScheduleRepository())
        print(f"✅ Loaded {count} demo tasks into project '{SAMPLE_PROJECT_ID}'")
    return 0


if __name__ == "__main__":
    sys.exit(main())
