"""Rule synchronization engine.

This package provides the stages of a reconciliation pass:
- Collection: resolve label selectors into rule documents
- Transformation: apply tenant overrides and external labels
- Packing: serialize documents into canonical rule-group submissions
- Diffing: find remote namespaces that are no longer wanted
- Execution: drive the remote store to the desired state
- Alertmanager: check and encode a tenant's Alertmanager configuration
- Reconciliation: sequence the above per tenant and record the outcome
"""
