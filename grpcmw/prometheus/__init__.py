"""Prometheus-style metrics, per-call reporters and text exposition for gRPC clients and servers."""