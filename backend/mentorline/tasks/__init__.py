"""Celery tasks driving the periodic scheduling sweeps and reminder dispatch."""
