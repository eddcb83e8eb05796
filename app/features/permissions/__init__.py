"""
Permission resolution feature module.

Job grants, per-user exceptions and delegated grants are combined into an
allow/deny decision for a subject and a resource of the service catalog.
"""
