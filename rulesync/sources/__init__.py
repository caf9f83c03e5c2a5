"""Rule document pool — where candidate PrometheusRule documents come from.

- Label selectors: Kubernetes-style queries over document labels
- Document sources: directory, in-memory, and Git-backed pools
"""
