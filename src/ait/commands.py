"""Built-in command dictionary used to pad suggestions when history is thin."""

from __future__ import annotations

COMMON_COMMANDS: tuple[str, ...] = (
    # files
    "ls", "ls -l", "ls -la", "ls -lh", "ls -lha", "ls -ltr",
    "cd", "cd ..", "cd ~", "cd -", "pwd",
    "mkdir", "mkdir -p", "rmdir", "rm", "rm -r", "rm -rf",
    "cp", "cp -r", "mv", "touch", "cat", "less", "more",
    "head", "tail", "tail -f", "ln", "ln -s",
    # text
    "grep", "grep -r", "grep -i", "grep -v", "find", "find . -name",
    "sed", "awk", "cut", "sort", "uniq", "wc", "wc -l", "diff", "comm",
    # permissions
    "chmod", "chmod +x", "chmod 755", "chmod 644", "chown", "chgrp",
    # archives
    "tar", "tar -xzf", "tar -czf", "tar -xvf", "tar -cvf",
    "zip", "unzip", "gzip", "gunzip", "bzip2", "bunzip2",
    # system
    "df", "df -h", "du", "du -sh", "free", "free -h", "top", "htop",
    "ps", "ps aux", "ps -ef", "uptime", "uname", "uname -a",
    "hostname", "whoami", "who", "w",
    # processes
    "kill", "killall", "pkill", "bg", "fg", "jobs", "nohup",
    # network
    "ping", "ping -c", "curl", "wget", "ssh", "scp", "rsync",
    "netstat", "netstat -tulpn", "ss", "ifconfig", "ip addr", "ip route",
    "traceroute", "nslookup", "dig",
    # packages
    "apt update", "apt upgrade", "apt install", "apt remove", "apt search",
    "apt-get update", "apt-get upgrade", "apt-get install",
    "yum update", "yum install", "yum remove", "dnf update", "dnf install",
    # services
    "systemctl start", "systemctl stop", "systemctl restart", "systemctl status",
    "systemctl enable", "systemctl disable", "service",
    # users
    "sudo", "su", "useradd", "usermod", "userdel", "passwd", "groupadd", "groupmod",
    # disks
    "mount", "umount", "fdisk", "parted", "mkfs",
    # editors
    "nano", "vim", "vi", "emacs",
    # shell
    "echo", "printf", "export", "source", "alias", "history", "clear", "exit", "logout",
    # git
    "git status", "git add", "git commit", "git commit -m", "git push", "git pull",
    "git clone", "git checkout", "git branch", "git log", "git diff", "git merge",
    # docker
    "docker ps", "docker ps -a", "docker images", "docker run", "docker exec",
    "docker stop", "docker rm", "docker rmi", "docker logs",
    "docker-compose up", "docker-compose down",
    # kubernetes
    "kubectl get pods", "kubectl get services", "kubectl describe", "kubectl logs",
    "kubectl exec", "kubectl apply", "kubectl delete",
)


def dictionary_matches(prefix: str, limit: int) -> list[str]:
    """Dictionary commands starting with ``prefix``, in dictionary order."""
    if limit <= 0:
        return []
    if not prefix:
        return list(COMMON_COMMANDS[:limit])
    matches: list[str] = []
    for cmd in COMMON_COMMANDS:
        if cmd.startswith(prefix):
            matches.append(cmd)
            if len(matches) >= limit:
                break
    return matches
