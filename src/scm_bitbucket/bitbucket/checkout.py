"""Shell command that checks out a pipeline's source inside a build container."""

from typing import Any, Dict, Mapping

CHECKOUT_STEP_NAME = "sd-checkout-code"

# Use git when present, otherwise the core/git habitat package
GIT_WRAPPER = (
    "$(if git --version > /dev/null 2>&1; "
    "then echo 'eval'; "
    "else echo 'sd-step exec core/git'; fi)"
)


def build_checkout_command(
    config: Mapping[str, Any],
    username: str,
    email: str,
) -> Dict[str, str]:
    """Assemble the checkout step.

    config keys: branch, host, org, repo, sha and optionally prRef.
    """
    branch = config["branch"]
    sha = config["sha"]
    pr_ref = config.get("prRef") or config.get("pr_ref")
    checkout_url = f"{config['host']}/{config['org']}/{config['repo']}"
    ssh_checkout_url = f"git@{config['host']}:{config['org']}/{config['repo']}"
    checkout_ref = branch if pr_ref else sha

    command = [
        f"echo Cloning {checkout_url}, on branch {branch}",
        "if [ ! -z $SCM_CLONE_TYPE ] && [ $SCM_CLONE_TYPE = ssh ]; "
        f"then export SCM_URL={ssh_checkout_url}; "
        "elif [ ! -z $SCM_USERNAME ] && [ ! -z $SCM_ACCESS_TOKEN ]; "
        f"then export SCM_URL=https://$SCM_USERNAME:$SCM_ACCESS_TOKEN@{checkout_url}; "
        f"else export SCM_URL=https://{checkout_url}; fi",
        f'{GIT_WRAPPER} "git clone --quiet --progress --branch {branch} $SCM_URL $SD_SOURCE_DIR"',
        f"echo Reset to SHA {checkout_ref}",
        f'{GIT_WRAPPER} "git reset --hard {checkout_ref}"',
        "echo Setting user name and user email",
        f'{GIT_WRAPPER} "git config user.name {username}"',
        f'{GIT_WRAPPER} "git config user.email {email}"',
    ]

    if pr_ref:
        # Bitbucket PR refs are plain source branch names
        command.extend([
            f"echo Fetching PR and merging with {branch}",
            f'{GIT_WRAPPER} "git fetch origin {pr_ref}"',
            f'{GIT_WRAPPER} "git merge --no-edit {sha}"',
        ])

    return {"name": CHECKOUT_STEP_NAME, "command": " && ".join(command)}
