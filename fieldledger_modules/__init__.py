"""
Field Ledger Modules.

Orchestration over the kernel for each business area.  A module holds its
domain models (the nouns), ORM tables, workflows, a write service and
read-only selectors.

Modules:
- Field tickets: change-order capture, pricing, signing, approval,
  disputes and the at-risk dashboard
"""
