# rehabtrack/models/user.py
from ..timeutil import utcnow
from .. import db


class User(db.Model):
    """
    Owned by the account service; the engine only reads it.
    """
    __tablename__ = "users"

    id = db.Column(db.BigInteger().with_variant(db.Integer, "sqlite"), primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    name = db.Column(db.String(100), nullable=False)
    role = db.Column(
        db.Enum("patient", "expert", "admin", name="user_role"),
        nullable=False,
        default="patient",
    )
    hospital = db.Column(db.String(150))
    # weak reference: deleting the expert leaves the patient untouched
    assigned_expert_id = db.Column(
        db.BigInteger().with_variant(db.Integer, "sqlite"),
        db.ForeignKey("users.id", ondelete="SET NULL"),
    )

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    assigned_expert = db.relationship("User", remote_side=[id], backref="assigned_patients")

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "hospital": self.hospital,
            "assigned_expert_id": self.assigned_expert_id,
        }
