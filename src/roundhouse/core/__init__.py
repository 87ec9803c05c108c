"""Engine core: clock, round scheduler, ledger client, resolvers, sessions."""
