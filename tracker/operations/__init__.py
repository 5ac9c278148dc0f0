"""
Operations Layer

Pure business rules that services compose. Operations here never touch the
database or the network, which keeps them unit-testable in isolation:

- merge_snapshots(): non-destructive merge of partial player snapshots
"""
