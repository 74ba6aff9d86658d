"""
Canonicalización XML (C14N 1.0 inclusiva, sin comentarios) para la firma SRI.

El validador del SRI recalcula los digests sobre esta forma canónica, por lo
que la salida debe ser estable byte a byte:

- declaraciones de namespace en alcance (heredadas + locales) que el ancestro
  ya emitido no haya declarado con el mismo valor, ordenadas por nombre
  calificado (``xmlns`` antes que ``xmlns:p``);
- atributos ordenados por (URI de namespace, nombre local), los atributos sin
  namespace primero;
- escape de atributos: & < " TAB LF CR; escape de texto: & < > CR;
- elementos vacíos como par inicio/fin, comentarios descartados.
"""
from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Tuple, Union

from lxml import etree

from .exceptions import SriCanonicalizationError

logger = logging.getLogger(__name__)

DS_NS = "http://www.w3.org/2000/09/xmldsig#"
XML_NS = "http://www.w3.org/XML/1998/namespace"
SIGNATURE_TAG = f"{{{DS_NS}}}Signature"

XmlSource = Union[bytes, str, etree._Element, etree._ElementTree]
ExcludeFn = Callable[[etree._Element], bool]


def _escape_text(value: str) -> str:
    return (
        value.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace("\r", "&#xD;")
    )


def _escape_attr(value: str) -> str:
    return (
        value.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace('"', "&quot;")
        .replace("\t", "&#x9;")
        .replace("\n", "&#xA;")
        .replace("\r", "&#xD;")
    )


def _ns_sort_key(item: Tuple[str, str]) -> str:
    prefix = item[0]
    return "xmlns" if not prefix else f"xmlns:{prefix}"


def _is_signature(element: etree._Element) -> bool:
    return element.tag == SIGNATURE_TAG


class CanonicalFormEngine:
    """Motor de canonicalización sobre árboles lxml."""

    def canonicalize(self, node: XmlSource) -> bytes:
        """Forma canónica UTF-8 del elemento (o del root del documento)."""
        return self._serialize(self._as_element(node), exclude=None)

    def canonicalize_for_enveloped_digest(self, document: XmlSource) -> bytes:
        """
        Forma canónica del documento sin ningún ds:Signature.

        Equivale a aplicar la transformación enveloped-signature y luego C14N:
        el subárbol de la firma se omite pero su texto posterior (tail) se
        conserva, igual que al remover el nodo del DOM.
        """
        return self._serialize(self._as_element(document), exclude=_is_signature)

    def _as_element(self, node: XmlSource) -> etree._Element:
        if isinstance(node, etree._ElementTree):
            return node.getroot()
        if isinstance(node, etree._Element):
            if not isinstance(node.tag, str):
                raise SriCanonicalizationError(f"Nodo no canonicalizable: {node!r}")
            return node
        if isinstance(node, str):
            node = node.encode("utf-8")
        if isinstance(node, (bytes, bytearray)):
            try:
                parser = etree.XMLParser(remove_blank_text=False, resolve_entities=False)
                return etree.fromstring(bytes(node), parser)
            except etree.XMLSyntaxError as e:
                raise SriCanonicalizationError(f"XML mal formado: {e}") from e
        raise SriCanonicalizationError(f"Tipo no soportado para C14N: {type(node).__name__}")

    def _serialize(self, element: etree._Element, exclude: Optional[ExcludeFn]) -> bytes:
        out: List[str] = []
        self._render_element(element, {}, out, exclude)
        return "".join(out).encode("utf-8")

    def _render_element(
        self,
        element: etree._Element,
        rendered_ns: Dict[str, str],
        out: List[str],
        exclude: Optional[ExcludeFn],
    ) -> None:
        qname = etree.QName(element)
        tag = f"{element.prefix}:{qname.localname}" if element.prefix else qname.localname

        declared: Dict[str, str] = {}
        in_scope = element.nsmap
        for prefix, uri in in_scope.items():
            key = prefix or ""
            if rendered_ns.get(key, "") != uri:
                declared[key] = uri
        if None not in in_scope and rendered_ns.get("", ""):
            declared[""] = ""

        out.append(f"<{tag}")
        for prefix, uri in sorted(declared.items(), key=_ns_sort_key):
            name = f"xmlns:{prefix}" if prefix else "xmlns"
            out.append(f' {name}="{_escape_attr(uri)}"')

        for _, attr_name, value in sorted(self._attributes(element, in_scope)):
            out.append(f' {attr_name}="{_escape_attr(value)}"')
        out.append(">")

        child_ns = {**rendered_ns, **declared} if declared else rendered_ns

        if element.text:
            out.append(_escape_text(element.text))
        for child in element:
            if isinstance(child, etree._Comment):
                pass
            elif isinstance(child, etree._ProcessingInstruction):
                out.append(f"<?{child.target} {child.text}?>" if child.text else f"<?{child.target}?>")
            elif isinstance(child, etree._Entity):
                raise SriCanonicalizationError(f"Referencia a entidad no resuelta: &{child.name};")
            elif exclude is not None and exclude(child):
                logger.debug(f"C14N: omitiendo {etree.QName(child).localname} (enveloped)")
            else:
                self._render_element(child, child_ns, out, exclude)
            if child.tail:
                out.append(_escape_text(child.tail))

        out.append(f"</{tag}>")

    def _attributes(
        self, element: etree._Element, in_scope: Dict[Optional[str], str]
    ) -> List[Tuple[Tuple[str, str], str, str]]:
        attrs = []
        for name, value in element.attrib.items():
            qname = etree.QName(name)
            uri = qname.namespace or ""
            if not uri:
                attr_name = qname.localname
            elif uri == XML_NS:
                attr_name = f"xml:{qname.localname}"
            else:
                prefix = next((p for p, u in in_scope.items() if p and u == uri), None)
                if prefix is None:
                    raise SriCanonicalizationError(
                        f"Atributo {name} sin prefijo declarado para el namespace {uri}"
                    )
                attr_name = f"{prefix}:{qname.localname}"
            attrs.append(((uri, qname.localname), attr_name, value))
        return attrs


_default_engine = CanonicalFormEngine()


def canonicalize(node: XmlSource) -> bytes:
    return _default_engine.canonicalize(node)


def canonicalize_for_enveloped_digest(document: XmlSource) -> bytes:
    return _default_engine.canonicalize_for_enveloped_digest(document)
