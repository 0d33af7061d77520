"""
FastAPI routers: public health check and the authenticated chat API.
"""
