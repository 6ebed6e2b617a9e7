"""Portal services: Session Provider, hand-off, recovery and storage."""
