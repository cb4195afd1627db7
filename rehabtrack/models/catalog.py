# rehabtrack/models/catalog.py
from ..timeutil import utcnow
from .. import db


class Category(db.Model):
    __tablename__ = "categories"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.String(255))

    videos = db.relationship("Video", back_populates="category")


class Video(db.Model):
    __tablename__ = "videos"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    duration_seconds = db.Column(db.Integer)
    difficulty_level = db.Column(
        db.Enum("beginner", "intermediate", "advanced", name="video_difficulty"),
        nullable=False,
        default="beginner",
    )
    thumbnail_url = db.Column(db.String(255))
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    category = db.relationship("Category", back_populates="videos")

    def to_summary_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "thumbnail_url": self.thumbnail_url,
            "duration_seconds": self.duration_seconds,
            "difficulty_level": self.difficulty_level,
            "category": self.category.name if self.category else None,
        }
