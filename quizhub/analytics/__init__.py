"""
Analytics module.

The aggregator folds completed attempts into running statistics; the
reporting service and ``quizhub.analytics.routes`` expose them.
"""
