import os
import errno
import logging

logger = logging.getLogger("ConfigBootstrapper")


class ConfigMissing(FileNotFoundError):
    """A template needed to create a config file does not exist."""

    def __init__(self, template, target):
        super().__init__(errno.ENOENT, f"Template not found (needed for '{target}')", template)
        self.template = template
        self.target = target


class ConfigFile:
    """
    One required config file.

    Content comes either from a template file (copied byte-for-byte) or
    from a fixed text body written as-is.
    """

    def __init__(self, label, target, template=None, content=None, hint=None):
        if (template is None) == (content is None):
            raise ValueError("ConfigFile needs exactly one of template or content")
        self.label = label
        self.target = target
        self.template = template
        self.content = content
        self.hint = hint

    def exists(self):
        return os.path.exists(self.target)

    def render(self):
        if self.template is None:
            return self.content.encode("utf-8")
        try:
            with open(self.template, "rb") as f:
                return f.read()
        except FileNotFoundError:
            raise ConfigMissing(self.template, self.target) from None

    def __repr__(self):
        return f"ConfigFile({self.label!r}, {self.target!r})"


class ConfigBootstrapper:
    def __init__(self, files):
        self.files = list(files)

    def ensure(self):
        """
        Create every missing file. Existing files are never read or touched.
        Returns the list of files that were written.
        Raises ConfigMissing on the first absent template, and any other
        OSError from reading a template or writing a target.
        """
        created = []
        for cfg in self.files:
            if cfg.exists():
                continue
            if self._write(cfg):
                created.append(cfg)
        return created

    def _write(self, cfg):
        print(f"⚠️  {cfg.label} file not found. Creating...")
        data = cfg.render()

        parent = os.path.dirname(cfg.target)
        if parent:
            os.makedirs(parent, exist_ok=True)
        # 'x' so a file that appeared since the check is left alone
        try:
            with open(cfg.target, "xb") as f:
                f.write(data)
        except FileExistsError:
            print(f"⚠️  {cfg.label} already exists at {cfg.target}, leaving it untouched.\n")
            return None

        note = f" {cfg.hint}" if cfg.hint else ""
        print(f"✅ {cfg.label} file created.{note}\n")
        logger.debug(f"Wrote {len(data)} bytes to {cfg.target}")
        return cfg
