from __future__ import annotations

DEFAULT_CONFIG_PATH = "/etc/borg/borg-config.yaml"

DEFAULT_CONFIG_TEMPLATE = """\
# borg-timemachine configuration
#
# Hourly, Time Machine style backups driven by BorgBackup.
# Validate your edits with: borg-timemachine --config <this file> info

repository:
  # Local path or remote URL, e.g. ssh://backup@nas.local/./borg
  path: /tmp/borg
  # none, authenticated, authenticated-blake2, repokey, repokey-blake2,
  # keyfile or keyfile-blake2
  encryption: repokey-blake2

# Compression passed to "borg create --compression", e.g. lz4, zstd,3, auto,zstd,10
compression: lz4

# Exclude patterns applied to every job
exclusions:
  - "*/.cache/*"
  - "*/node_modules/*"
  - "*.tmp"

options:
  one_file_system: true
  exclude_caches: true
  show_progress: false
  show_stats: true
  # Seconds before a borg invocation is abandoned; null waits forever.
  # Never applied to "mount".
  command_timeout: null

# Jobs run one after another, in this order.
# Archives are named <destination>-<UTC timestamp>.
jobs:
  - name: system-config
    source: /etc
    destination: system-config
    enabled: true
    exclude: []

  - name: user-homes
    source: /home
    destination: user-homes
    enabled: true
    exclude:
      - "*/Downloads/*"
      - "*/.local/share/Trash/*"

# Grandfather-father-son retention, applied per job after a successful backup.
# Everything newer than "within" is kept unconditionally (units: H, d, w, m, y).
# A count of 0 keeps nothing in that bucket beyond the "within" window.
retention:
  within: 24H
  hourly: 24
  daily: 7
  weekly: 4
  monthly: 6
  yearly: 2

notification:
  enabled: false
  email: root@localhost
  # "mail" uses the local mail command, "smtp" talks to smtp_host directly
  transport: mail
  smtp_host: localhost
  smtp_port: 25
  smtp_starttls: false

logging:
  log_file: /var/log/borg-timemachine.log
  lock_file: /var/run/borg-timemachine.lock

maintenance:
  # ISO weekday for "borg check" after a backup (1 = Monday ... 7 = Sunday, 0 = never)
  check_day: 7
  # Run "borg compact" after pruning
  auto_compact: true

security:
  # Restrict with: chmod 600 /root/.borg-passphrase
  passphrase_file: /root/.borg-passphrase
"""
