from importlib import import_module

modules = [
    'auth',
    'users',
    'companies',
    'invitations',
    'participants',
    'incidents',
    'narratives',
    'clarifications',
    'workflow',
    'analysis',
    'prompts',
    'prompt_groups',
    'ai_logs',
    'audit',
    'exports',
    'permissions',
]

for m in modules:
    import_module(f'.{m}', __name__)

__all__ = modules
