from sqlalchemy import inspect
from sqlalchemy.orm import declarative_base


class CustomBase:
    # Columns worth showing in logs besides the primary key.
    __repr_attrs__ = ()

    def __repr__(self) -> str:
        class_name = self.__class__.__name__
        state = inspect(self)

        names = [c.name for c in self.__table__.primary_key.columns]
        names += [n for n in self.__repr_attrs__ if n not in names]

        # Expired attributes are shown as "..." instead of triggering a reload.
        parts = []
        for name in names:
            if name in state.unloaded:
                parts.append(f"{name}=...")
            else:
                parts.append(f"{name}={getattr(self, name)!r}")

        return f"{class_name}({', '.join(parts)})"


Base = declarative_base(cls=CustomBase)
