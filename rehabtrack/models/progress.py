# rehabtrack/models/progress.py
from ..timeutil import utcnow
from .. import db


class UserProgress(db.Model):
    """
    Append-only history of completed sessions. Only notes/rating change
    after insert.
    """
    __tablename__ = "user_progress"
    __table_args__ = (
        db.Index("ix_user_progress_user_date", "user_id", "completion_date"),
    )

    id = db.Column(db.BigInteger().with_variant(db.Integer, "sqlite"), primary_key=True)
    user_id = db.Column(
        db.BigInteger().with_variant(db.Integer, "sqlite"),
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    video_id = db.Column(db.Integer, db.ForeignKey("videos.id"), nullable=False)
    completion_date = db.Column(db.DateTime, nullable=False, default=utcnow)
    rating = db.Column(db.SmallInteger)
    notes = db.Column(db.Text)

    user = db.relationship("User", backref=db.backref("progress", passive_deletes=True))
    video = db.relationship("Video", backref="progress")

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "video_id": self.video_id,
            "completion_date": self.completion_date.isoformat() if self.completion_date else None,
            "rating": self.rating,
            "notes": self.notes,
            "video": self.video.to_summary_dict() if self.video else None,
        }
