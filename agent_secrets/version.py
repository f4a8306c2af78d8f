"""Agent Secrets Meta information.
   Agent Secrets stores scoped secrets for an autonomous agent and collects
   them from humans through short-lived, tunnel-backed web forms.
"""
__title__ = 'agent_secrets'
__description__ = (
   'Agent Secrets stores scoped, encrypted secrets for an agent '
   'and collects them through ephemeral web forms.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2026 Agent Secrets Contributors'
__author__ = 'Agent Secrets Contributors'
__author_email__ = 'maintainers@agent-secrets.dev'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/agent-secrets/agent-secrets'
