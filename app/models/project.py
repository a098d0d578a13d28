"""
Modello Project (tabella: projects).

Progetto a cui appartengono i DDT; opzionalmente legato a un cliente.
"""

from datetime import datetime

from app.extensions import db


class Project(db.Model):
    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)

    client_id = db.Column(
        db.Integer,
        db.ForeignKey("clients.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    name = db.Column(db.String(255), nullable=False)
    project_code = db.Column(db.String(64), nullable=False, index=True)

    created_at = db.Column(
        db.DateTime, nullable=False, default=datetime.utcnow, index=True
    )

    client = db.relationship("Client", backref="projects")

    def __repr__(self) -> str:
        return f"<Project id={self.id} project_code={self.project_code!r}>"
