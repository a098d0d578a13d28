"""Modello Client (tabella: clients)."""

from datetime import datetime

from app.extensions import db


class Client(db.Model):
    __tablename__ = "clients"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    cif = db.Column(db.String(32), nullable=False, unique=True, index=True)  # Codice fiscale / CIF
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<Client id={self.id} name={self.name!r}>"
