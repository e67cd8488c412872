"""Social domain: models, state machine, synchronisation and deletion."""
