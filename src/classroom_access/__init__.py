"""Access reconciliation for GitHub Classroom generated repositories.

This package replaces collaborator invitations issued by the classroom
provisioning bot with equivalent invitations from the authenticated
account, providing:
- GitHub webhook signature verification and event dispatch
- Repository name classification (individual / team / unrelated)
- A retrying, dry-run aware access client over the GitHub REST API
- The invitation reconciliation workflow
- Prometheus metrics and a FastAPI HTTP surface
"""
