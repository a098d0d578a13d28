"""
Modello User (tabella: users).

Rappresenta l'utente che emette i DDT (albaranes).
L'autenticazione è gestita fuori da questa applicazione.
"""

from datetime import datetime

from app.extensions import db


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(128), nullable=False)
    surnames = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)

    # Timestamps
    created_at = db.Column(
        db.DateTime, nullable=False, default=datetime.utcnow, index=True
    )

    # Note: La relazione 'delivery_notes' è creata automaticamente da DeliveryNote.user (backref)

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r}>"
