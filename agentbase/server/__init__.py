"""
AgentBase REST API Server

Usage:
    agentbase-server --port 8000
    # or: python -m agentbase.server.main

Endpoints:
    POST   /run                               invoke a run, return the final answer
    POST   /stream                            server-sent events, ends with "data: [DONE]"
    GET    /utilities                         registered utilities
    GET    /conversations/{id}/messages       persisted thread
    DELETE /conversations/{id}                delete a thread
    GET    /health
"""
