"""Kubernetes (K8s) layer for meshadapter.

This module provides the cluster-facing building blocks:
- Kubeconfig parsing and sanitization
- Cluster client construction with rate tuning
- Manifest apply/delete and service endpoint resolution
- Remote manifest fetching
"""
