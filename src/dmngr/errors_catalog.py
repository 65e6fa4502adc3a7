"""Actionable error catalog for dmngr."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "kubeconfig_unreadable": {
        "what": "Could not load kubeconfig: {detail}",
        "next": "Check `--kubeconfig` or the KUBECONFIG variable and that the file is valid YAML.",
    },
    "context_unavailable": {
        "what": "Could not build a client for context '{context}': {detail}",
        "next": "Run `dmngr contexts` to list the configured contexts.",
    },
    "invalid_resource_type": {
        "what": "Invalid resource type: {kind}.",
        "next": "Use `deployment` or `statefulset`.",
    },
    "rollout_timeout": {
        "what": "Rollout of {image} to {kind}/{name} did not finish within {timeout}s.",
        "next": "Inspect the pods with `kubectl rollout status`, then re-run or raise `--timeout`.",
    },
    "rollout_cancelled": {
        "what": "Rollout of {image} to {kind}/{name} was cancelled while waiting.",
        "next": "The update was already submitted; check the workload before retrying.",
    },
    "missing_container": {
        "what": "{kind}/{name} has no container at index {index}.",
        "next": "Check the pod template; dmngr expects the monitored image at that index.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
