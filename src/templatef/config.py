"""
templatef 全局配置

规则表以纯数据的形式按组登记，项目类型只是若干组的组合；
新增项目类型或清理类别只需要修改这里的配置，不需要改代码。
"""

# 撤销日志与相关文件
UNDO_LOG_FILENAME = ".template-undo.json"
RESTORE_DEFAULTS_FILENAME = ".restore-defaults.json"
TEMPLATE_METADATA_FILENAME = "template.json"
PROJECT_CONFIG_FILENAME = "templatef.toml"

# 撤销日志 schema 版本（主版本不同即不兼容）
SCHEMA_VERSION = "2.0.0"

# 占位符格式，NAME 会被替换为占位符名
DEFAULT_PLACEHOLDER_FORMAT = "{{NAME}}"
PLACEHOLDER_FORMATS = {
    "double-brace": "{{NAME}}",
    "double-underscore": "__NAME__",
    "percent": "%NAME%",
}

# 恢复时做令牌回填扫描需要跳过的目录
SKIP_SCAN_DIRS = {".git", "node_modules", ".venv", "venv", "__pycache__"}

# 占位符规则组
# sources 形如 "文件:点分键"，"@dirname" 表示项目目录名
PLACEHOLDER_GROUPS = {
    "node_package": [
        {"name": "PROJECT_NAME", "sources": ["package.json:name", "@dirname"], "required": True,
         "description": "项目名称"},
        {"name": "PROJECT_DESCRIPTION", "sources": ["package.json:description"],
         "description": "项目描述"},
        {"name": "AUTHOR", "sources": ["package.json:author.name", "package.json:author"],
         "description": "作者"},
        {"name": "REPOSITORY_URL", "sources": ["package.json:repository.url", "package.json:repository"],
         "description": "仓库地址"},
    ],
    "readme": [
        {"name": "README_TITLE", "sources": ["README.md:title"], "description": "README 标题"},
    ],
    "dirname_only": [
        {"name": "PROJECT_NAME", "sources": ["@dirname"], "required": True, "description": "项目名称"},
    ],
    "vite": [
        {"name": "HTML_TITLE", "sources": ["index.html:title"], "description": "页面标题"},
        {"name": "BASE_URL", "sources": ["vite.config.js:base", "vite.config.ts:base"],
         "description": "部署基础路径"},
    ],
    "cloudflare_worker": [
        {"name": "WORKER_NAME", "sources": ["wrangler.jsonc:name"], "description": "Worker 名称"},
        {"name": "CLOUDFLARE_ACCOUNT_ID", "sources": ["wrangler.jsonc:account_id"],
         "description": "Cloudflare 账户 ID"},
    ],
    "cloudflare_d1": [
        {"name": "D1_DATABASE_BINDING", "sources": ["wrangler.jsonc:d1_databases.0.binding"],
         "description": "D1 绑定名"},
        {"name": "D1_DATABASE_ID", "sources": ["wrangler.jsonc:d1_databases.0.database_id"],
         "description": "D1 数据库 ID"},
    ],
    "cloudflare_turso": [
        {"name": "TURSO_DB_URL", "sources": ["wrangler.jsonc:vars.TURSO_DB_URL"],
         "description": "Turso 数据库地址"},
        {"name": "TURSO_DB_AUTH_TOKEN", "sources": ["wrangler.jsonc:vars.TURSO_DB_AUTH_TOKEN"],
         "description": "Turso 访问令牌"},
    ],
    "python_package": [
        {"name": "PROJECT_NAME", "sources": ["pyproject.toml:project.name", "@dirname"], "required": True,
         "description": "项目名称"},
        {"name": "PROJECT_DESCRIPTION", "sources": ["pyproject.toml:project.description"],
         "description": "项目描述"},
        {"name": "AUTHOR", "sources": ["pyproject.toml:project.authors.0.name"], "description": "作者"},
        {"name": "AUTHOR_EMAIL", "sources": ["pyproject.toml:project.authors.0.email"],
         "description": "作者邮箱"},
        {"name": "REPOSITORY_URL", "sources": ["pyproject.toml:project.urls.Repository",
                                               "pyproject.toml:project.urls.Homepage"],
         "description": "仓库地址"},
    ],
}

# 清理规则组（锁文件 / 构建输出 / 缓存）
# type: 'file'(文件), 'dir'(文件夹), 'both'(两者)
CLEANUP_GROUPS = {
    "node_deps": [
        {"pattern": "node_modules", "type": "dir", "category": "dependencies",
         "description": "依赖目录", "regeneration_command": "npm install"},
        {"pattern": "package-lock.json", "type": "file", "category": "lock",
         "description": "npm 锁文件", "regeneration_command": "npm install"},
        {"pattern": "yarn.lock", "type": "file", "category": "lock",
         "description": "yarn 锁文件", "regeneration_command": "yarn install"},
        {"pattern": "pnpm-lock.yaml", "type": "file", "category": "lock",
         "description": "pnpm 锁文件", "regeneration_command": "pnpm install"},
        {"pattern": "bun.lockb", "type": "file", "category": "lock",
         "description": "bun 锁文件", "regeneration_command": "bun install"},
    ],
    "node_build": [
        {"pattern": "dist", "type": "dir", "category": "build", "description": "构建输出",
         "regeneration_command": "npm run build"},
        {"pattern": "build", "type": "dir", "category": "build", "description": "构建输出",
         "regeneration_command": "npm run build"},
        {"pattern": ".next", "type": "dir", "category": "build", "description": "Next.js 构建缓存"},
        {"pattern": "coverage", "type": "dir", "category": "cache", "description": "覆盖率报告"},
        {"pattern": ".nyc_output", "type": "dir", "category": "cache", "description": "覆盖率中间文件"},
        {"pattern": ".cache", "type": "dir", "category": "cache", "description": "工具缓存"},
    ],
    "wrangler": [
        {"pattern": ".wrangler", "type": "dir", "category": "cache", "description": "Wrangler 本地状态"},
    ],
    "python_build": [
        {"pattern": "__pycache__", "type": "dir", "category": "cache", "description": "字节码缓存"},
        {"pattern": "*.pyc", "type": "file", "category": "cache", "description": "字节码文件"},
        {"pattern": ".pytest_cache", "type": "dir", "category": "cache", "description": "pytest 缓存"},
        {"pattern": ".mypy_cache", "type": "dir", "category": "cache", "description": "mypy 缓存"},
        {"pattern": "*.egg-info", "type": "dir", "category": "build", "description": "打包元数据"},
        {"pattern": "dist", "type": "dir", "category": "build", "description": "构建输出",
         "regeneration_command": "python -m build"},
        {"pattern": "build", "type": "dir", "category": "build", "description": "构建输出"},
        {"pattern": ".venv", "type": "dir", "category": "dependencies", "description": "虚拟环境",
         "regeneration_command": "python -m venv .venv"},
        {"pattern": "poetry.lock", "type": "file", "category": "lock", "description": "poetry 锁文件",
         "regeneration_command": "poetry lock"},
        {"pattern": "uv.lock", "type": "file", "category": "lock", "description": "uv 锁文件",
         "regeneration_command": "uv lock"},
    ],
    "os_junk": [
        {"pattern": ".DS_Store", "type": "file", "category": "cache", "description": "macOS 目录元数据"},
        {"pattern": "Thumbs.db", "type": "file", "category": "cache", "description": "Windows 缩略图缓存"},
    ],
    "logs": [
        {"pattern": "*.log", "type": "file", "category": "cache", "description": "日志文件"},
        {"pattern": "*.pid", "type": "file", "category": "cache", "description": "进程 ID 文件"},
    ],
}

# 敏感文件组：同样会被删除，但会附带警告
SENSITIVE_GROUPS = {
    "env_files": [
        {"pattern": ".env", "type": "file", "description": "环境变量文件",
         "warning": "可能包含密钥或凭据，删除前请确认已另行备份"},
        {"pattern": ".env.*", "type": "file", "description": "环境变量文件",
         "warning": "可能包含密钥或凭据，删除前请确认已另行备份"},
        {"pattern": ".dev.vars", "type": "file", "description": "Wrangler 本地变量",
         "warning": "通常包含本地开发用的密钥"},
    ],
    "credentials": [
        {"pattern": "*.pem", "type": "file", "description": "证书/私钥",
         "warning": "私钥文件不应出现在模板中"},
        {"pattern": "credentials.json", "type": "file", "description": "凭据文件",
         "warning": "凭据文件不应出现在模板中"},
    ],
}

# 保留模式组：保留优先级最高，任何删除规则都无法覆盖
PRESERVE_GROUPS = {
    "common": [
        ".git/", "*.md", "LICENSE", ".gitignore", ".gitattributes",
        UNDO_LOG_FILENAME, RESTORE_DEFAULTS_FILENAME, PROJECT_CONFIG_FILENAME,
        ".env.example",
    ],
    "node_sources": [
        "src/", "public/", "migrations/", "package.json", "tsconfig.json",
        "wrangler.jsonc", "wrangler.json", "vite.config.*", "index.html",
    ],
    "python_sources": [
        "pyproject.toml", "setup.cfg", "requirements*.txt",
    ],
}

# 项目类型 = 规则组的组合
PROJECT_TYPES = {
    "generic": {
        "name": "通用项目",
        "placeholders": ["dirname_only", "readme"],
        "targets": ["README.md"],
        "cleanup": ["os_junk", "logs"],
        "sensitive": ["env_files", "credentials"],
        "preserve": ["common"],
    },
    "node": {
        "name": "Node.js 项目",
        "placeholders": ["node_package", "readme"],
        "targets": ["package.json", "README.md"],
        "cleanup": ["node_deps", "node_build", "os_junk", "logs"],
        "sensitive": ["env_files", "credentials"],
        "preserve": ["common", "node_sources"],
    },
    "vite-react": {
        "name": "Vite + React 项目",
        "placeholders": ["node_package", "readme", "vite"],
        "targets": ["package.json", "README.md", "index.html", "vite.config.js", "vite.config.ts"],
        "cleanup": ["node_deps", "node_build", "os_junk", "logs"],
        "sensitive": ["env_files", "credentials"],
        "preserve": ["common", "node_sources"],
    },
    "cf-d1": {
        "name": "Cloudflare Workers + D1",
        "placeholders": ["node_package", "readme", "cloudflare_worker", "cloudflare_d1"],
        "targets": ["package.json", "README.md", "wrangler.jsonc"],
        "cleanup": ["node_deps", "node_build", "wrangler", "os_junk", "logs"],
        "sensitive": ["env_files", "credentials"],
        "preserve": ["common", "node_sources"],
    },
    "cf-turso": {
        "name": "Cloudflare Workers + Turso",
        "placeholders": ["node_package", "readme", "cloudflare_worker", "cloudflare_turso"],
        "targets": ["package.json", "README.md", "wrangler.jsonc"],
        "cleanup": ["node_deps", "node_build", "wrangler", "os_junk", "logs"],
        "sensitive": ["env_files", "credentials"],
        "preserve": ["common", "node_sources"],
    },
    "python": {
        "name": "Python 项目",
        "placeholders": ["python_package", "readme"],
        "targets": ["pyproject.toml", "README.md", "setup.cfg"],
        "cleanup": ["python_build", "os_junk", "logs"],
        "sensitive": ["env_files", "credentials"],
        "preserve": ["common", "python_sources"],
    },
}

# 脱敏类别，按顺序依次应用，先出现的类别先替换
SANITIZATION_CATEGORIES = [
    {
        "name": "apiKeys",
        "replacement": "{{SANITIZED_API_KEY}}",
        "description": "API 密钥与访问令牌",
        "patterns": [
            r"sk-[a-zA-Z0-9]{48}",                          # OpenAI
            r"xoxb-[0-9]+-[0-9]+-[0-9]+-[a-f0-9]{32}",      # Slack bot
            r"ghp_[a-zA-Z0-9]{36}",                         # GitHub personal access token
            r"gho_[a-zA-Z0-9]{36}",
            r"ghu_[a-zA-Z0-9]{36}",
            r"ghs_[a-zA-Z0-9]{36}",
            r"glpat-[a-zA-Z0-9_-]{20}",                     # GitLab
            r"AIza[0-9A-Za-z_-]{35}",                       # Google API key
            r"ya29\.[0-9A-Za-z_-]+",                        # Google OAuth2
            r"AKIA[0-9A-Z]{16}",                            # AWS access key ID
            r"[0-9a-zA-Z/+]{40}",                           # AWS secret access key
            r"eyJ[A-Za-z0-9_=-]+\.[A-Za-z0-9_=-]+\.?[A-Za-z0-9_.+/=-]*",  # JWT
        ],
    },
    {
        "name": "personalInfo",
        "replacement": "{{SANITIZED_NAME}}",
        "description": "人名与邮箱地址",
        "patterns": [
            r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b",
            r"\b[A-Z][a-z]+ [A-Z][a-z]+\b",
            r"\b[A-Z][a-z]+\s+[A-Z]\.\s+[A-Z][a-z]+\b",
            r"\b[A-Z][a-z]+\s+[A-Z][a-z]+\s+[A-Z][a-z]+\b",
        ],
    },
    {
        "name": "filePaths",
        "replacement": "{{SANITIZED_PATH}}",
        "description": "包含用户名的文件路径",
        "patterns": [
            r"/Users/[^/\s]+",
            r"C:\\Users\\[^\\/\s]+",
            r"/home/[^/\s]+",
        ],
    },
    {
        "name": "hexIds",
        "replacement": "{{SANITIZED_ID}}",
        "description": "账户 ID 与 UUID",
        "patterns": [
            r"[a-f0-9]{32}",
            r"[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}",
        ],
    },
    {
        "name": "ipAddresses",
        "replacement": "{{SANITIZED_IP}}",
        "description": "IP 地址",
        "patterns": [
            r"\b(?:[0-9]{1,3}\.){3}[0-9]{1,3}\b",
            r"\b(?:[0-9a-fA-F]{1,4}:){7}[0-9a-fA-F]{1,4}\b",
        ],
    },
    {
        "name": "databaseUrls",
        "replacement": "{{SANITIZED_DATABASE_URL}}",
        "description": "数据库连接串",
        "patterns": [
            r"postgres(?:ql)?://[^@\s]+@[^/\s]+/\S+",
            r"mysql://[^@\s]+@[^/\s]+/\S+",
            r"mongodb(?:\+srv)?://[^@\s]+@[^/\s]+/\S+",
            r"rediss?://[^@\s]+@[^/\s]+/\S*",
        ],
    },
]
