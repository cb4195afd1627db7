# rehabtrack/models/schedule.py
from ..timeutil import utcnow
from .. import db


class Schedule(db.Model):
    __tablename__ = "schedules"
    __table_args__ = (
        db.Index("ix_schedules_user_date", "user_id", "scheduled_date"),
    )

    id = db.Column(db.BigInteger().with_variant(db.Integer, "sqlite"), primary_key=True)
    user_id = db.Column(
        db.BigInteger().with_variant(db.Integer, "sqlite"),
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    video_id = db.Column(db.Integer, db.ForeignKey("videos.id"), nullable=False)
    scheduled_date = db.Column(db.DateTime, nullable=False)

    # completed_at is set iff completed is true
    completed = db.Column(db.Boolean, nullable=False, default=False)
    completed_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    user = db.relationship("User", backref=db.backref("schedules", passive_deletes=True))
    video = db.relationship("Video", backref="schedules")

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "video_id": self.video_id,
            "scheduled_date": self.scheduled_date.isoformat() if self.scheduled_date else None,
            "completed": bool(self.completed),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "video": self.video.to_summary_dict() if self.video else None,
        }
