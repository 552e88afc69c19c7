from storyforge.consistency.enforcer import enforce_actor_consistency, enrich_traceability

__all__ = ["enforce_actor_consistency", "enrich_traceability"]
