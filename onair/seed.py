from datetime import timedelta

from sqlalchemy.orm import Session

from onair.db import Base, SessionLocal, engine
from onair.models.channel import Channel
from onair.services.builder import build_draft_day, publish_day
from onair.services.timeline import day_bounds, utc_now


def seed() -> None:
    Base.metadata.create_all(bind=engine)
    db: Session = SessionLocal()
    try:
        channels = [
            Channel(id=1, name="Channel 1", slug="channel-1"),
            Channel(id=2, name="Channel 2", slug="channel-2"),
            Channel(id=21, name="Live 21", slug="live-21", always_live=True, live_feed_ref="live:channel21"),
        ]
        for channel in channels:
            if not db.query(Channel).get(channel.id):
                db.add(channel)
        db.commit()

        today = utc_now().date()
        for channel_id in (1, 2):
            for offset in (0, 1):
                day = today + timedelta(days=offset)
                day_start, _ = day_bounds(day)
                build_draft_day(
                    db,
                    {
                        "channelId": channel_id,
                        "day": day.isoformat(),
                        "baseTimeUtc": day_start.isoformat(),
                        "rows": [
                            {
                                "title": f"Block {hour:02d}",
                                "mediaRef": f"channel{channel_id}/block_{hour:02d}.mp4",
                                "durationSeconds": 3600,
                                "sortIndex": hour,
                            }
                            for hour in range(24)
                        ],
                    },
                )
                publish_day(db, channel_id, day)
    finally:
        db.close()


if __name__ == "__main__":
    seed()
