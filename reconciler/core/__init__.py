"""Reconciliation core: state, diff, drift rules, delete policy, uploads and the driver."""
