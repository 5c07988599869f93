# Insert Sample Job Site + Worker
import logging

from sqlmodel import Session, SQLModel

import models  # noqa: F401  registers tables
from db.session import engine
from models.job import Job
from models.worker import Worker

logger = logging.getLogger(__name__)


def seed_demo_data():
    SQLModel.metadata.create_all(engine)

    with Session(engine) as session:
        # Check if records already exist to avoid duplicates
        if not session.get(Job, "HQ"):
            session.add(
                Job(
                    id="HQ",
                    name="Head Office",
                    latitude=51.5074,
                    longitude=-0.1278,
                    geofence_radius=100.0,  # 100 m radius -> 150 m safe-out
                    geofence_enabled=True,
                )
            )
            logger.info("Added HQ job site")
        else:
            logger.info("HQ job site already exists")

        if not session.get(Job, "YARD"):
            session.add(
                Job(
                    id="YARD",
                    name="Storage Yard",
                    latitude=51.5155,
                    longitude=-0.0922,
                    geofence_radius=250.0,  # not in the table -> 312.5 m safe-out
                    geofence_enabled=False,
                )
            )
            logger.info("Added YARD job site")
        else:
            logger.info("YARD job site already exists")

        if not session.get(Worker, "demo-worker"):
            session.add(
                Worker(
                    id="demo-worker",
                    name="Demo Worker",
                    shift_start="08:00",
                    shift_end="5:00 PM",
                    shift_days="1,2,3,4,5",
                )
            )
            logger.info("Added demo worker")

        session.commit()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    seed_demo_data()
