"""
Autopiter catalog records.
BrandRecord -> ModelRecord -> SubmodelRecord -> CategoryNode tree -> PartLink -> PartDetail.
to_dict()/from_dict() map each record to the JSON shape written to <brand>.json.
"""
from dataclasses import dataclass, field


@dataclass
class PartDetail:
    name: str | None = None
    parameters: list[dict] = field(default_factory=list)  # [{"key": str|None, "value": str|None}, ...]

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "parameters": [{"key": p.get("key"), "value": p.get("value")} for p in self.parameters],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PartDetail":
        return cls(
            name=data.get("name"),
            parameters=[{"key": p.get("key"), "value": p.get("value")} for p in data.get("parameters") or []],
        )


@dataclass
class PartLink:
    """Leaf item link of a category. parts stays None when its detail page could not be fetched."""
    name: str
    link: str
    parts: list[PartDetail] | None = None

    def to_dict(self) -> dict:
        out = {"name": self.name, "link": self.link}
        if self.parts is not None:
            out["parts"] = [p.to_dict() for p in self.parts]
        return out

    @classmethod
    def from_dict(cls, data: dict) -> "PartLink":
        parts = data.get("parts")
        return cls(
            name=data.get("name") or "",
            link=data.get("link") or "",
            parts=[PartDetail.from_dict(p) for p in parts] if parts is not None else None,
        )


@dataclass
class CategoryNode:
    name: str = ""
    subcategories: list["CategoryNode"] = field(default_factory=list)
    links: list[PartLink] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "subcategories": [c.to_dict() for c in self.subcategories],
            "links": [link.to_dict() for link in self.links],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CategoryNode":
        return cls(
            name=data.get("name") or "",
            subcategories=[cls.from_dict(c) for c in data.get("subcategories") or []],
            links=[PartLink.from_dict(link) for link in data.get("links") or []],
        )

    def iter_nodes(self, path: tuple[str, ...] = ()):
        """Yield (path, node) pairs depth-first, pre-order; path includes this node's name."""
        path = path + (self.name,)
        yield path, self
        for child in self.subcategories:
            yield from child.iter_nodes(path)


@dataclass
class SubmodelRecord:
    """
    One row of a model's submodel table: free-form label -> text pairs (years,
    engine, body...) plus the link to its category tree page and the walked tree.
    """
    fields: dict[str, str] = field(default_factory=dict)
    link: str = ""
    parts: list[CategoryNode] = field(default_factory=list)

    def to_dict(self) -> dict:
        out = dict(self.fields)
        out["link"] = self.link
        out["parts"] = [c.to_dict() for c in self.parts]
        return out

    @classmethod
    def from_dict(cls, data: dict) -> "SubmodelRecord":
        fields = {k: v for k, v in data.items() if k not in ("link", "parts")}
        return cls(
            fields=fields,
            link=data.get("link") or "",
            parts=[CategoryNode.from_dict(c) for c in data.get("parts") or []],
        )


@dataclass
class ModelRecord:
    link: str
    submodels: list[SubmodelRecord] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"link": self.link, "submodels": [s.to_dict() for s in self.submodels]}

    @classmethod
    def from_dict(cls, data: dict) -> "ModelRecord":
        return cls(
            link=data.get("link") or "",
            submodels=[SubmodelRecord.from_dict(s) for s in data.get("submodels") or []],
        )


@dataclass
class BrandRecord:
    link: str
    models: dict[str, ModelRecord] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"link": self.link, "models": {name: m.to_dict() for name, m in self.models.items()}}

    @classmethod
    def from_dict(cls, data: dict) -> "BrandRecord":
        return cls(
            link=data.get("link") or "",
            models={name: ModelRecord.from_dict(m) for name, m in (data.get("models") or {}).items()},
        )
